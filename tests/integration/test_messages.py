"""Integration tests for the parent / administration message threads."""

from tests.conftest import authHeader, createUser
from transitdesk.src.enums import UserRole


def send(client, headers, content="When does the bus arrive?"):
    response = client.post("/api/messages", headers=headers, json={"content": content})
    assert response.status_code == 201, response.text
    return response.json()


class TestMessage:
    def test_sender_of_parent(self, client, parentHeader):
        message = send(client, parentHeader)
        assert message["sender"] == "Parent:parent@transitdesk.com"
        assert message["isRead"] is False
        assert message["parentMessageId"] is None

    def test_sender_of_admin(self, client, adminHeader):
        assert send(client, adminHeader)["sender"] == "Admin"

    def test_blank_content(self, client, parentHeader):
        response = client.post(
            "/api/messages", headers=parentHeader, json={"content": "   "}
        )
        assert response.status_code == 400

    def test_reply(self, client, parentHeader, adminHeader):
        original = send(client, parentHeader)
        response = client.post(
            f"/api/messages/{original['id']}/reply",
            headers=adminHeader,
            json={"content": "At 08:10"},
        )
        assert response.status_code == 201, response.text
        reply = response.json()
        assert reply["sender"] == "Admin"
        assert reply["parentMessageId"] == original["id"]

        messages = client.get("/api/messages", headers=parentHeader).json()
        assert {x["id"] for x in messages} == {original["id"], reply["id"]}
        assert next(x for x in messages if x["id"] == original["id"])["isRead"]

    def test_reply_to_reply(self, client, parentHeader, adminHeader):
        original = send(client, parentHeader)
        path = f"/api/messages/{original['id']}/reply"
        reply = client.post(path, headers=adminHeader, json={"content": "At 08:10"})
        response = client.post(
            f"/api/messages/{reply.json()['id']}/reply",
            headers=adminHeader,
            json={"content": "Or 08:15"},
        )
        assert response.json()["parentMessageId"] == original["id"]

    def test_parent_cannot_reply(self, client, parentHeader):
        original = send(client, parentHeader)
        response = client.post(
            f"/api/messages/{original['id']}/reply",
            headers=parentHeader,
            json={"content": "Anyone?"},
        )
        assert response.status_code == 403

    def test_reply_unknown(self, client, adminHeader):
        response = client.post(
            "/api/messages/999/reply", headers=adminHeader, json={"content": "Hello"}
        )
        assert response.status_code == 404


class TestThreadScope:
    def test_parents_see_own_threads(self, client, admin, parentHeader, adminHeader):
        other = createUser(
            UserRole.PARENT, "other@transitdesk.com", myadmin=admin.email
        )
        otherHeader = authHeader(other)
        mine = send(client, parentHeader)
        theirs = send(client, otherHeader, "Is school open tomorrow?")
        client.post(
            f"/api/messages/{theirs['id']}/reply",
            headers=adminHeader,
            json={"content": "Yes"},
        )

        messages = client.get("/api/messages", headers=parentHeader).json()
        assert [x["id"] for x in messages] == [mine["id"]]
        assert len(client.get("/api/messages", headers=adminHeader).json()) == 3

        response = client.put(f"/api/messages/{theirs['id']}/read", headers=parentHeader)
        assert response.status_code == 403

    def test_mark_read(self, client, parentHeader, adminHeader):
        original = send(client, parentHeader)
        response = client.put(f"/api/messages/{original['id']}/read", headers=adminHeader)
        assert response.status_code == 200
        assert response.json()["isRead"] is True

        unread = client.get(
            "/api/messages", headers=adminHeader, params={"read": False}
        ).json()
        assert unread == []

    def test_mark_read_unknown(self, client, adminHeader):
        assert client.put("/api/messages/999/read", headers=adminHeader).status_code == 404
