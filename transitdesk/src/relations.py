"""
Referential integrity rules between entities.

Every function here performs the compensating writes that keep the two
sides of a relationship consistent. They only touch the given session; the
caller commits the primary write and its compensations together, so either
both are persisted or neither is.

Functions that bind drivers to vehicles expect the caller to hold the
`driver` table mutex for the whole check-then-act sequence.
"""

from typing import List, Optional
from sqlalchemy.orm.session import Session

from transitdesk.src import exceptions, getters
from transitdesk.src.enums import AssignmentType
from transitdesk.src.db import (
    Agency,
    Driver,
    Route,
    Student,
    Trip,
    User,
    Vehicle,
    VehicleAssignment,
)


# ---------------------------------------------------------------------------
# Agency <-> User
# ---------------------------------------------------------------------------
def grantToSuperadmins(session: Session, agency: Agency) -> None:
    """Add a newly created agency to every superadmin account."""
    for user in getters.superadmins(session):
        if agency not in user.agencies:
            user.agencies.append(agency)


def grantAgency(session: Session, admin: User, agency: Agency) -> None:
    """
    Grant an agency to an admin and to every account the admin created.
    Already granted agencies are left as they are.
    """
    for user in [admin] + getters.managedUsers(session, admin):
        if agency not in user.agencies:
            user.agencies.append(agency)


def revokeAgency(session: Session, admin: User, agency: Agency) -> None:
    """Revoke an agency from an admin and from every account the admin created."""
    for user in [admin] + getters.managedUsers(session, admin):
        if agency in user.agencies:
            user.agencies.remove(agency)


def releaseAgency(agency: Agency) -> None:
    """Detach an agency about to be deleted from its users and routes."""
    agency.users.clear()
    for route in list(agency.routes):
        route.agency = None


# ---------------------------------------------------------------------------
# Route <-> Agency, Trip <-> Route
# ---------------------------------------------------------------------------
def attachRoute(route: Route, agency: Optional[Agency]) -> None:
    """
    Move a route under an agency, or detach it when `agency` is None.
    The route leaves the list of its previous agency.
    """
    route.agency = agency


def releaseRoute(session: Session, route: Route) -> None:
    """Detach a route about to be deleted from its trips, vehicles and assignments."""
    for trip in list(route.trips):
        trip.route = None
    session.query(Vehicle).filter(Vehicle.assigned_route_id == route.id).update(
        {Vehicle.assigned_route_id: None}, synchronize_session="fetch"
    )
    dropAssignments(session, AssignmentType.ROUTE, route.id)


def attachTrip(trip: Trip, route: Optional[Route]) -> None:
    """
    Move a trip under a route, or detach it when `route` is None.
    The trip leaves the list of its previous route.
    """
    trip.route = route


def releaseTrip(session: Session, trip: Trip) -> None:
    """Detach a trip about to be deleted from its vehicles and assignments."""
    session.query(Vehicle).filter(Vehicle.assigned_trip_id == trip.id).update(
        {Vehicle.assigned_trip_id: None}, synchronize_session="fetch"
    )
    dropAssignments(session, AssignmentType.TRIP, trip.id)


# ---------------------------------------------------------------------------
# Student <-> User
# ---------------------------------------------------------------------------
def resolveParent(session: Session, cinParent: str) -> User:
    """
    Resolve the parent account of a student by its CIN number.

    Raises:
        exceptions.UnknownValue: If no account carries this CIN number.
    """
    parent = session.query(User).filter(User.cin_number == cinParent).first()
    if parent is None:
        raise exceptions.UnknownValue("cinParent")
    return parent


def adoptStudents(session: Session, user: User) -> None:
    """Attach to a new account the students already registered with its CIN number."""
    if not user.cin_number:
        return
    students = (
        session.query(Student).filter(Student.cin_parent == user.cin_number).all()
    )
    for student in students:
        student.parent = user


def rekeyStudents(user: User, cinNumber: Optional[str]) -> None:
    """Propagate a CIN number change of an account to the students it owns."""
    for student in user.students:
        student.cin_parent = cinNumber


def releaseStudents(user: User) -> None:
    """Detach an account about to be deleted from the students it owns."""
    for student in list(user.students):
        student.parent = None


# ---------------------------------------------------------------------------
# Driver <-> Vehicle
# ---------------------------------------------------------------------------
def bindDrivers(session: Session, vehicle: Vehicle, cinNumbers: List[str]) -> None:
    """
    Replace the drivers of a vehicle by the drivers carrying the given CIN
    numbers. Drivers removed from the vehicle become free, added drivers
    get bound to it.

    Raises:
        exceptions.InvalidValue: If a CIN number is repeated or unknown.
        exceptions.DriverAlreadyAssigned: If a driver is bound to another vehicle.
    """
    if len(set(cinNumbers)) != len(cinNumbers):
        raise exceptions.InvalidValue("drivers")
    drivers = session.query(Driver).filter(Driver.cin_number.in_(cinNumbers)).all()
    if len(drivers) != len(cinNumbers):
        raise exceptions.InvalidValue("drivers")
    for driver in drivers:
        if driver.vehicle_id is not None and driver.vehicle_id != vehicle.id:
            raise exceptions.DriverAlreadyAssigned(driver.cin_number)
    vehicle.drivers = sorted(drivers, key=lambda driver: cinNumbers.index(driver.cin_number))


def releaseDrivers(vehicle: Vehicle) -> None:
    """Free the drivers of a vehicle about to be deleted."""
    for driver in list(vehicle.drivers):
        driver.vehicle = None


# ---------------------------------------------------------------------------
# Vehicle assignment
# ---------------------------------------------------------------------------
def checkAssignment(
    session: Session, assignedType: str, assignedRef: str
) -> AssignmentType:
    """
    Validate the target of an assignment, whatever its status.

    Raises:
        exceptions.InvalidAssignmentType: If the type is not trip, route or block.
        exceptions.UnknownValue: If the referenced trip or route does not exist.
    """
    try:
        assignedType = AssignmentType(assignedType)
    except ValueError:
        raise exceptions.InvalidAssignmentType()

    if assignedType == AssignmentType.TRIP:
        if session.query(Trip).filter(Trip.id == refId(assignedRef)).first() is None:
            raise exceptions.UnknownValue("trip")
    elif assignedType == AssignmentType.ROUTE:
        if session.query(Route).filter(Route.id == refId(assignedRef)).first() is None:
            raise exceptions.UnknownValue("route")
    return assignedType


def assignVehicle(
    session: Session, vehicle: Vehicle, assignedType: str, assignedRef: str
) -> None:
    """
    Point a vehicle to exactly one of a trip, a route or a block, clearing
    the other two.
    """
    assignedType = checkAssignment(session, assignedType, assignedRef)
    clearVehicleAssignment(vehicle)
    if assignedType == AssignmentType.TRIP:
        vehicle.assigned_trip_id = refId(assignedRef)
    elif assignedType == AssignmentType.ROUTE:
        vehicle.assigned_route_id = refId(assignedRef)
    else:
        vehicle.assigned_block = assignedRef


def dropAssignments(session: Session, assignedType: AssignmentType, pk: int) -> None:
    """Delete the assignments targeting a trip or route about to be deleted."""
    session.query(VehicleAssignment).filter(
        VehicleAssignment.assigned_type == assignedType.value,
        VehicleAssignment.assigned_ref == str(pk),
    ).delete(synchronize_session="fetch")


def clearVehicleAssignment(vehicle: Vehicle) -> None:
    vehicle.assigned_route_id = None
    vehicle.assigned_trip_id = None
    vehicle.assigned_block = None


def refId(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
