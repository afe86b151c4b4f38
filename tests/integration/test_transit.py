"""Integration tests for agencies, routes, trips, stops, calendars and shapes."""

from tests.conftest import PHONE
from transitdesk.src.db import Agency, sessionMaker


def countAgencies() -> int:
    session = sessionMaker()
    try:
        return session.query(Agency).count()
    finally:
        session.close()


class TestAgency:
    def test_admin_cannot_create(self, client, adminHeader):
        response = client.post(
            "/api/agencies", headers=adminHeader, json={"name": "Rogue agency"}
        )
        assert response.status_code == 403
        assert countAgencies() == 0

    def test_granted_to_superadmin(self, client, superadmin, rootHeader, agency):
        response = client.get(f"/api/users/{superadmin.id}", headers=rootHeader)
        assert agency["id"] in response.json()["agencies"]

    def test_duplicate_name(self, client, rootHeader, agency):
        response = client.post(
            "/api/agencies", headers=rootHeader, json={"name": agency["name"]}
        )
        assert response.status_code == 400
        assert countAgencies() == 1

    def test_invalid_phone(self, client, rootHeader):
        response = client.post(
            "/api/agencies",
            headers=rootHeader,
            json={"name": "Bad phone", "phone": "12"},
        )
        assert response.status_code == 400

    def test_admin_update_scope(self, client, admin, agency, rootHeader, adminHeader):
        path = f"/api/agencies/{agency['id']}"
        response = client.put(path, headers=adminHeader, json={"phone": PHONE})
        assert response.status_code == 403

        client.post(
            "/api/userpermission/assign-agency",
            headers=rootHeader,
            json={"userId": admin.id, "agencyId": agency["id"]},
        )
        response = client.put(
            path, headers=adminHeader, json={"website": "https://transitdesk.com"}
        )
        assert response.status_code == 200, response.text
        assert response.json()["website"] == "https://transitdesk.com"

        response = client.put(path, headers=adminHeader, json={"name": "Renamed"})
        assert response.status_code == 403

    def test_admin_cannot_take_foreign_route(
        self, client, admin, agency, route, rootHeader, adminHeader
    ):
        other = client.post(
            "/api/agencies", headers=rootHeader, json={"name": "Other agency"}
        ).json()
        client.post(
            "/api/userpermission/assign-agency",
            headers=rootHeader,
            json={"userId": admin.id, "agencyId": other["id"]},
        )
        response = client.put(
            f"/api/agencies/{other['id']}",
            headers=adminHeader,
            json={"routes": [route["id"]]},
        )
        assert response.status_code == 403
        response = client.get(f"/api/agencies/{agency['id']}", headers=rootHeader)
        assert response.json()["routes"] == [route["id"]]

    def test_superadmin_moves_route(self, client, agency, route, rootHeader):
        other = client.post(
            "/api/agencies", headers=rootHeader, json={"name": "Other agency"}
        ).json()
        response = client.put(
            f"/api/agencies/{other['id']}",
            headers=rootHeader,
            json={"routes": [route["id"]]},
        )
        assert response.status_code == 200, response.text
        assert response.json()["routes"] == [route["id"]]
        response = client.get(f"/api/agencies/{agency['id']}", headers=rootHeader)
        assert response.json()["routes"] == []

    def test_delete_detaches_routes(self, client, rootHeader, agency, route):
        response = client.delete(f"/api/agencies/{agency['id']}", headers=rootHeader)
        assert response.status_code == 200
        response = client.get(f"/api/routes/{route['id']}", headers=rootHeader)
        assert response.json()["agency"] is None


class TestRoute:
    def test_listed_under_agency(self, client, rootHeader, agency, route):
        response = client.get(f"/api/agencies/{agency['id']}", headers=rootHeader)
        assert response.json()["routes"] == [route["id"]]

        response = client.delete(f"/api/routes/{route['id']}", headers=rootHeader)
        assert response.status_code == 200
        response = client.get(f"/api/agencies/{agency['id']}", headers=rootHeader)
        assert response.json()["routes"] == []

    def test_unknown_agency(self, client, rootHeader):
        response = client.post(
            "/api/routes",
            headers=rootHeader,
            json={"agency": 999, "route_id": "R9", "route_short_name": "9"},
        )
        assert response.status_code == 404

    def test_parent_cannot_create(self, client, parentHeader, agency):
        response = client.post(
            "/api/routes",
            headers=parentHeader,
            json={"agency": agency["id"], "route_id": "R2", "route_short_name": "2"},
        )
        assert response.status_code == 403


class TestTrip:
    def test_listed_under_route(self, client, rootHeader, route, trip):
        response = client.get(f"/api/trips/routes/{route['id']}", headers=rootHeader)
        assert response.status_code == 200
        assert [x["id"] for x in response.json()] == [trip["id"]]

    def test_delete_twice(self, client, rootHeader, trip):
        path = f"/api/trips/{trip['id']}"
        assert client.delete(path, headers=rootHeader).status_code == 200
        assert client.delete(path, headers=rootHeader).status_code == 404

    def test_unknown_calendar(self, client, rootHeader, route):
        response = client.post(
            "/api/trips",
            headers=rootHeader,
            json={"route": route["id"], "trip_id": "R1-T9", "service_id": 999},
        )
        assert response.status_code == 404

    def test_invalid_direction(self, client, rootHeader, route, calendar):
        response = client.post(
            "/api/trips",
            headers=rootHeader,
            json={
                "route": route["id"],
                "trip_id": "R1-T2",
                "service_id": calendar["id"],
                "direction_id": 3,
            },
        )
        assert response.status_code == 400

    def test_move_to_other_route(self, client, rootHeader, agency, route, trip):
        other = client.post(
            "/api/routes",
            headers=rootHeader,
            json={"agency": agency["id"], "route_id": "R2", "route_short_name": "2"},
        ).json()
        response = client.put(
            f"/api/trips/{trip['id']}", headers=rootHeader, json={"route": other["id"]}
        )
        assert response.status_code == 200, response.text
        assert response.json()["route"] == other["id"]
        response = client.get(f"/api/trips/routes/{route['id']}", headers=rootHeader)
        assert response.status_code == 404


class TestStopTime:
    def stopTime(self, trip, stop, arrival="08:00:00", departure="08:01:00"):
        return {
            "trip": trip["id"],
            "stop": stop["id"],
            "arrival_time": arrival,
            "departure_time": departure,
            "stop_sequence": 1,
        }

    def test_departure_before_arrival(self, client, rootHeader, trip, stop):
        response = client.post(
            "/api/stopTimes",
            headers=rootHeader,
            json=self.stopTime(trip, stop, "08:00:00", "07:59:00"),
        )
        assert response.status_code == 400

    def test_after_midnight(self, client, rootHeader, trip, stop):
        response = client.post(
            "/api/stopTimes",
            headers=rootHeader,
            json=self.stopTime(trip, stop, "24:50:00", "25:05:00"),
        )
        assert response.status_code == 201, response.text

    def test_duplicate_pair(self, client, rootHeader, trip, stop):
        data = self.stopTime(trip, stop)
        assert client.post("/api/stopTimes", headers=rootHeader, json=data).status_code == 201
        response = client.post("/api/stopTimes", headers=rootHeader, json=data)
        assert response.status_code == 400

    def test_listed_by_trip(self, client, rootHeader, trip, stop):
        client.post("/api/stopTimes", headers=rootHeader, json=self.stopTime(trip, stop))
        response = client.get(f"/api/stopTimes/trips/{trip['id']}", headers=rootHeader)
        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["stop"]["stop_name"] == "Central station"

    def test_removed_with_stop(self, client, rootHeader, trip, stop):
        client.post("/api/stopTimes", headers=rootHeader, json=self.stopTime(trip, stop))
        assert client.delete(f"/api/stops/{stop['id']}").status_code == 200
        response = client.get(f"/api/stopTimes/trips/{trip['id']}", headers=rootHeader)
        assert response.status_code == 404


class TestStop:
    def test_unauthenticated_crud(self, client, stop):
        response = client.put(f"/api/stops/{stop['id']}", json={"zone_id": "Z1"})
        assert response.status_code == 200
        response = client.get("/api/stops", params={"zone_id": "Z1"})
        assert [x["id"] for x in response.json()] == [stop["id"]]

    def test_duplicate_stop_id(self, client, stop):
        response = client.post(
            "/api/stops",
            json={"stop_id": "S1", "stop_name": "Copy", "stop_lat": 0, "stop_lon": 0},
        )
        assert response.status_code == 400


class TestCalendar:
    def test_invalid_window(self, client, rootHeader, calendar):
        response = client.put(
            f"/api/calendars/{calendar['id']}",
            headers=rootHeader,
            json={"end_date": "2024-12-31"},
        )
        assert response.status_code == 400

    def test_delete_in_use(self, client, rootHeader, calendar, trip):
        path = f"/api/calendars/{calendar['id']}"
        assert client.delete(path, headers=rootHeader).status_code == 400
        client.delete(f"/api/trips/{trip['id']}", headers=rootHeader)
        assert client.delete(path, headers=rootHeader).status_code == 200


class TestShape:
    def test_points_ordered(self, client, rootHeader):
        response = client.post(
            "/api/shapes",
            headers=rootHeader,
            json={
                "shape_id": "SH1",
                "points": [
                    {"shape_pt_lat": 36.81, "shape_pt_lon": 10.17, "shape_pt_sequence": 2},
                    {"shape_pt_lat": 36.80, "shape_pt_lon": 10.18, "shape_pt_sequence": 1},
                ],
            },
        )
        assert response.status_code == 201, response.text
        sequence = [x["shape_pt_sequence"] for x in response.json()["points"]]
        assert sequence == [1, 2]

        response = client.get("/api/shapes/byShapeId/SH1", headers=rootHeader)
        assert response.status_code == 200
        response = client.get("/api/shapes/summary", headers=rootHeader)
        assert response.json() == [{"id": 1, "shape_id": "SH1"}]
