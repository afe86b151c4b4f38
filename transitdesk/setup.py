import argparse
from http import HTTPStatus
from requests import post

from transitdesk.src import argon2
from transitdesk.src.enums import AssignmentType, UserRole
from transitdesk.src.constants import (
    SUPERADMIN_EMAIL,
    SUPERADMIN_PASSWORD,
    SUPERADMIN_USERNAME,
)
from transitdesk.src.urls import (
    URL_SESSION,
    URL_AGENCY,
    URL_ROUTE,
    URL_CALENDAR,
    URL_TRIP,
    URL_STOP,
    URL_STOP_TIME,
    URL_DRIVER,
    URL_VEHICLE,
    URL_VEHICLE_ASSIGNMENT,
)
from transitdesk.src.db import User, sessionMaker, engine, ORMbase


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    ORMbase.metadata.drop_all(engine)
    print("* All tables deleted")


def createTables():
    ORMbase.metadata.create_all(engine)
    print("* All tables created")


def initDB():
    if not SUPERADMIN_EMAIL or not SUPERADMIN_PASSWORD:
        print("* SUPERADMIN_EMAIL and SUPERADMIN_PASSWORD must be set")
        return
    session = sessionMaker()
    try:
        superadmin = (
            session.query(User).filter(User.role == UserRole.SUPERADMIN.value).first()
        )
        if superadmin is not None:
            print(f"* Superadmin already exists ({superadmin.email})")
            return
        superadmin = User(
            username=SUPERADMIN_USERNAME,
            email=SUPERADMIN_EMAIL,
            password=argon2.makePassword(SUPERADMIN_PASSWORD),
            role=UserRole.SUPERADMIN.value,
        )
        session.add(superadmin)
        session.commit()
        print(f"* Created superadmin {SUPERADMIN_EMAIL}")
    finally:
        session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code, response.text
    return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080/api"

    # Open a superadmin session
    credentials = {"email": SUPERADMIN_EMAIL, "password": SUPERADMIN_PASSWORD}
    response = POST(
        (BASE_URL + URL_SESSION),
        json=credentials,
        status_code=HTTPStatus.OK,
    )
    print("* Created session for superadmin")
    accessToken = {"Authorization": f"Bearer {response.json()['token']['data']}"}

    # Create Agency
    agencyData = {
        "name": "Test agency",
        "email": "contact@transitdesk.com",
        "phone": "+919496801157",
        "website": "https://transitdesk.com",
    }
    agency = POST(
        (BASE_URL + URL_AGENCY),
        header=accessToken,
        json=agencyData,
        status_code=HTTPStatus.OK,
    )
    print("* Created agency")

    # Create Route
    routeData = {
        "agency": agency.json()["id"],
        "route_id": "R1",
        "route_short_name": "1",
        "route_long_name": "Central station - University",
        "route_type": "bus",
    }
    route = POST((BASE_URL + URL_ROUTE), header=accessToken, json=routeData)
    print("* Created route")

    # Create Calendar
    calendarData = {
        "service_id": "WEEKDAYS",
        "monday": True,
        "tuesday": True,
        "wednesday": True,
        "thursday": True,
        "friday": True,
        "saturday": False,
        "sunday": False,
        "start_date": "2025-01-01",
        "end_date": "2025-12-31",
    }
    calendar = POST((BASE_URL + URL_CALENDAR), header=accessToken, json=calendarData)
    print("* Created calendar")

    # Create Trip
    tripData = {
        "route": route.json()["id"],
        "trip_id": "R1-T1",
        "service_id": calendar.json()["id"],
        "trip_headsign": "University",
        "direction_id": 0,
    }
    trip = POST((BASE_URL + URL_TRIP), header=accessToken, json=tripData)
    print("* Created trip")

    # Create Stops
    stopsData = [
        {"stop_id": "S1", "stop_name": "Central station", "stop_lat": 36.8065, "stop_lon": 10.1815},
        {"stop_id": "S2", "stop_name": "City hall", "stop_lat": 36.8102, "stop_lon": 10.1790},
        {"stop_id": "S3", "stop_name": "University", "stop_lat": 36.8188, "stop_lon": 10.1658},
    ]
    stops = [POST((BASE_URL + URL_STOP), json=x) for x in stopsData]
    print("* Created stops")

    # Create Stop times
    times = [("08:00:00", "08:01:00"), ("08:10:00", "08:11:00"), ("08:20:00", "08:21:00")]
    for sequence, (stop, (arrival, departure)) in enumerate(zip(stops, times), 1):
        stopTimeData = {
            "trip": trip.json()["id"],
            "stop": stop.json()["id"],
            "arrival_time": arrival,
            "departure_time": departure,
            "stop_sequence": sequence,
        }
        POST((BASE_URL + URL_STOP_TIME), header=accessToken, json=stopTimeData)
    print("* Created stop times")

    # Create Drivers
    driversData = [
        {
            "username": "Driver one",
            "email": "driver1@transitdesk.com",
            "cinNumber": "D0000001",
            "phoneNumber": "+919496801157",
        },
        {
            "username": "Driver two",
            "email": "driver2@transitdesk.com",
            "cinNumber": "D0000002",
            "phoneNumber": "+919496801157",
        },
    ]
    for driverData in driversData:
        POST((BASE_URL + URL_DRIVER), header=accessToken, json=driverData)
    print("* Created drivers")

    # Create Vehicle
    vehicleData = {
        "uniqueId": "BUS-001",
        "name": "Bus 001",
        "drivers": [x["cinNumber"] for x in driversData],
        "latitude": 36.8065,
        "longitude": 10.1815,
    }
    vehicle = POST((BASE_URL + URL_VEHICLE), json=vehicleData)
    print("* Created vehicle")

    # Assign Vehicle to the trip
    assignmentData = {
        "vehicle_id": vehicle.json()["id"],
        "assigned_type": {"type": AssignmentType.TRIP.value, "id": trip.json()["id"]},
    }
    POST((BASE_URL + URL_VEHICLE_ASSIGNMENT), header=accessToken, json=assignmentData)
    print("* Created vehicle assignment")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="create the superadmin")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
