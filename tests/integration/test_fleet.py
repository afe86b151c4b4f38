"""Integration tests for vehicles, drivers, assignments and students."""

from tests.conftest import PASSWORD, PHONE, createUser
from transitdesk.src.db import Vehicle, sessionMaker
from transitdesk.src.enums import UserRole


def countVehicles() -> int:
    session = sessionMaker()
    try:
        return session.query(Vehicle).count()
    finally:
        session.close()


def vehicleForm(uniqueId: str, drivers: list) -> dict:
    return {
        "uniqueId": uniqueId,
        "name": uniqueId,
        "drivers": drivers,
        "latitude": 36.8,
        "longitude": 10.18,
    }


class TestVehicle:
    def test_drivers_bound(self, client, rootHeader, drivers, vehicle):
        assert vehicle["drivers"] == [drivers[0]["id"], drivers[1]["id"]]
        response = client.get(f"/api/drivers/{drivers[0]['id']}", headers=rootHeader)
        assert response.json()["assignedVehicle"] == vehicle["id"]

    def test_without_driver(self, client, drivers):
        response = client.post("/api/vehicles", json=vehicleForm("BUS-002", []))
        assert response.status_code == 400
        assert countVehicles() == 0

    def test_too_many_drivers(self, client, drivers):
        response = client.post(
            "/api/vehicles", json=vehicleForm("BUS-002", ["D1", "D2", "D3"])
        )
        assert response.status_code == 400
        assert countVehicles() == 0

    def test_driver_already_bound(self, client, vehicle):
        response = client.post("/api/vehicles", json=vehicleForm("BUS-002", ["D1"]))
        assert response.status_code == 400
        assert "D1" in response.json()["message"]
        assert countVehicles() == 1

    def test_unknown_driver(self, client, drivers):
        response = client.post("/api/vehicles", json=vehicleForm("BUS-002", ["D9"]))
        assert response.status_code == 400
        assert countVehicles() == 0

    def test_replace_drivers(self, client, rootHeader, drivers, vehicle):
        response = client.put(
            f"/api/vehicles/{vehicle['id']}", json={"drivers": ["D3"]}
        )
        assert response.status_code == 200, response.text
        assert response.json()["drivers"] == [drivers[2]["id"]]

        response = client.get(
            "/api/drivers", headers=rootHeader, params={"assigned": False}
        )
        assert {x["cinNumber"] for x in response.json()} == {"D1", "D2"}

    def test_telemetry(self, client, vehicle):
        response = client.put(
            f"/api/vehicles/{vehicle['id']}",
            json={
                "temperature": 21.5,
                "pressure": 1013.2,
                "humidity": 40,
                "flame": False,
                "estimatedArrivalTimes": [
                    {"stopId": 1, "arrivalTime": "2025-03-01T08:10:00Z"}
                ],
                "vehicle_details": {"next_stop_id": 1, "next_stop_name": "City hall"},
            },
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["pressure"] == 1013.2
        assert body["estimatedArrivalTimes"][0]["stopId"] == 1
        assert body["vehicle_details"]["next_stop_name"] == "City hall"

    def test_delete_frees_drivers(self, client, rootHeader, vehicle):
        response = client.delete(f"/api/vehicles/{vehicle['id']}")
        assert response.status_code == 200
        response = client.post("/api/vehicles", json=vehicleForm("BUS-002", ["D1"]))
        assert response.status_code == 201, response.text


class TestDriver:
    def test_duplicate_cin(self, client, rootHeader, drivers):
        response = client.post(
            "/api/drivers",
            headers=rootHeader,
            json={
                "username": "Copy",
                "email": "copy@transitdesk.com",
                "cinNumber": "D1",
                "phoneNumber": PHONE,
            },
        )
        assert response.status_code == 400

    def test_parent_cannot_manage(self, client, parentHeader):
        response = client.post(
            "/api/drivers",
            headers=parentHeader,
            json={
                "username": "Driver",
                "email": "driver@transitdesk.com",
                "cinNumber": "D7",
                "phoneNumber": PHONE,
            },
        )
        assert response.status_code == 403


class TestVehicleAssignment:
    def test_assign_trip(self, client, rootHeader, vehicle, trip, route):
        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={
                "vehicle_id": vehicle["id"],
                "assigned_type": {"type": "trip", "id": trip["id"]},
            },
        )
        assert response.status_code == 201, response.text
        assignment = response.json()
        assert assignment["assigned_type"] == {"type": "trip", "id": trip["id"]}
        assert assignment["status"] == "active"

        body = client.get(f"/api/vehicles/{vehicle['id']}").json()
        assert body["assignedTrip"] == trip["id"]

        # Reassigning to a route clears the trip
        response = client.put(
            f"/api/vehicle-assignments/{assignment['id']}",
            headers=rootHeader,
            json={"assigned_type": {"type": "route", "id": route["id"]}},
        )
        assert response.status_code == 200, response.text
        body = client.get(f"/api/vehicles/{vehicle['id']}").json()
        assert body["assignedTrip"] is None
        assert body["assignedRoute"] == route["id"]

        response = client.delete(
            f"/api/vehicle-assignments/{assignment['id']}", headers=rootHeader
        )
        assert response.status_code == 200
        body = client.get(f"/api/vehicles/{vehicle['id']}").json()
        assert body["assignedRoute"] is None

    def test_assign_block(self, client, rootHeader, vehicle):
        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={
                "vehicle_id": vehicle["id"],
                "assigned_type": {"type": "block", "id": "B-12"},
            },
        )
        assert response.status_code == 201, response.text
        assert client.get(f"/api/vehicles/{vehicle['id']}").json()["assignedBlock"] == "B-12"

    def test_invalid_type(self, client, rootHeader, vehicle):
        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={
                "vehicle_id": vehicle["id"],
                "assigned_type": {"type": "depot", "id": 1},
            },
        )
        assert response.status_code == 400

    def test_unknown_trip(self, client, rootHeader, vehicle):
        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={
                "vehicle_id": vehicle["id"],
                "assigned_type": {"type": "trip", "id": 999},
            },
        )
        assert response.status_code == 404

    def test_inactive_target_checked(self, client, rootHeader, vehicle):
        form = {"vehicle_id": vehicle["id"], "status": "inactive"}
        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={**form, "assigned_type": {"type": "depot", "id": 999}},
        )
        assert response.status_code == 400

        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={**form, "assigned_type": {"type": "trip", "id": 999}},
        )
        assert response.status_code == 404
        assert client.get("/api/vehicle-assignments", headers=rootHeader).json() == []

    def test_dropped_with_trip(self, client, rootHeader, vehicle, trip):
        assignment = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={
                "vehicle_id": vehicle["id"],
                "assigned_type": {"type": "trip", "id": trip["id"]},
            },
        ).json()
        response = client.delete(f"/api/trips/{trip['id']}", headers=rootHeader)
        assert response.status_code == 200

        response = client.get(
            f"/api/vehicle-assignments/{assignment['id']}", headers=rootHeader
        )
        assert response.status_code == 404
        assert client.get(f"/api/vehicles/{vehicle['id']}").json()["assignedTrip"] is None

    def test_dropped_with_route(self, client, rootHeader, vehicle, route):
        assignment = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={
                "vehicle_id": vehicle["id"],
                "assigned_type": {"type": "route", "id": route["id"]},
            },
        ).json()
        response = client.delete(f"/api/routes/{route['id']}", headers=rootHeader)
        assert response.status_code == 200

        response = client.get(
            f"/api/vehicle-assignments/{assignment['id']}", headers=rootHeader
        )
        assert response.status_code == 404
        body = client.get(f"/api/vehicles/{vehicle['id']}").json()
        assert body["assignedRoute"] is None

    def test_missing_target(self, client, rootHeader, vehicle):
        response = client.post(
            "/api/vehicle-assignments",
            headers=rootHeader,
            json={"vehicle_id": vehicle["id"]},
        )
        assert response.status_code == 400


class TestStudent:
    def studentForm(self, cinParent: str) -> dict:
        return {
            "username": "Sami",
            "badgeId": "B-001",
            "cinParent": cinParent,
            "phoneParent": PHONE,
            "level": "CM2",
        }

    def test_linked_to_parent(self, client, rootHeader, parent):
        response = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P100")
        )
        assert response.status_code == 201, response.text
        student = response.json()
        assert student["parent"] == parent.id

        response = client.get(f"/api/users/{parent.id}", headers=rootHeader)
        assert response.json()["students"] == [student["id"]]

    def test_unknown_parent(self, client, rootHeader):
        response = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P404")
        )
        assert response.status_code == 404

    def test_detached_when_parent_deleted(self, client, rootHeader, parent):
        student = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P100")
        ).json()
        client.delete(f"/api/users/{parent.id}", headers=rootHeader)
        response = client.get(f"/api/students/{student['id']}", headers=rootHeader)
        assert response.json()["parent"] is None

    def test_moved_to_new_parent(self, client, rootHeader, parent):
        other = createUser(UserRole.PARENT, "other@transitdesk.com", cin_number="P200")
        student = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P100")
        ).json()
        response = client.put(
            f"/api/students/{student['id']}",
            headers=rootHeader,
            json={"cinParent": "P200"},
        )
        assert response.status_code == 200, response.text
        assert response.json()["parent"] == other.id

        response = client.get(f"/api/users/{parent.id}", headers=rootHeader)
        assert response.json()["students"] == []
        response = client.get(f"/api/users/{other.id}", headers=rootHeader)
        assert response.json()["students"] == [student["id"]]

    def test_removed_from_parent(self, client, rootHeader, parent):
        student = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P100")
        ).json()
        response = client.delete(f"/api/students/{student['id']}", headers=rootHeader)
        assert response.status_code == 200

        response = client.get(f"/api/users/{parent.id}", headers=rootHeader)
        assert response.json()["students"] == []

    def test_adopted_by_new_account(self, client, rootHeader, parent):
        student = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P100")
        ).json()
        client.delete(f"/api/users/{parent.id}", headers=rootHeader)

        response = client.post(
            "/api/users",
            headers=rootHeader,
            json={
                "username": "New parent",
                "email": "newparent@transitdesk.com",
                "password": PASSWORD,
                "cinNumber": "P100",
            },
        )
        assert response.status_code == 200, response.text
        account = response.json()
        assert account["students"] == [student["id"]]

        response = client.get(f"/api/students/{student['id']}", headers=rootHeader)
        assert response.json()["parent"] == account["id"]

    def test_rekeyed_with_account(self, client, rootHeader, parent):
        student = client.post(
            "/api/students", headers=rootHeader, json=self.studentForm("P100")
        ).json()
        response = client.put(
            f"/api/users/{parent.id}", headers=rootHeader, json={"cinNumber": "P300"}
        )
        assert response.status_code == 200, response.text
        assert response.json()["students"] == [student["id"]]

        response = client.get(f"/api/students/{student['id']}", headers=rootHeader)
        body = response.json()
        assert body["cinParent"] == "P300"
        assert body["parent"] == parent.id
