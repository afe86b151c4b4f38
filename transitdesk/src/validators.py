"""
Validation and permission checks for TransitDesk API.

This module centralizes guard logic such as:
- Token validation
- Role-based permission checks and record scoping
- Protected account enforcement
- GTFS value checks (stop times, calendars, vehicle drivers)

All functions raise appropriate exceptions from `transitdesk.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from typing import Iterable, List, Optional
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Query
from sqlalchemy.orm.session import Session

from transitdesk.src import exceptions, jwt
from transitdesk.src.db import User, Agency
from transitdesk.src.enums import Permission, UserRole
from transitdesk.src.permissions import ADMIN_AGENCY_FIELDS, hasPermission
from transitdesk.src.functions import toSeconds
from transitdesk.src.constants import (
    MAX_DRIVERS_PER_VEHICLE,
    MIN_DRIVERS_PER_VEHICLE,
    PROTECTED_SUPERADMIN_EMAIL,
)


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def userToken(
    bearer: Optional[HTTPAuthorizationCredentials], session: Session
) -> User:
    """
    Validate a bearer token and resolve the account it was issued to.

    Args:
        bearer (HTTPAuthorizationCredentials | None): Credentials extracted
            from the `Authorization` header, None when the header is absent.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        User: The authenticated account.

    Raises:
        exceptions.InvalidToken: If the token is missing, malformed, expired
            or refers to an account that no longer exists.
    """
    if bearer is None or not bearer.credentials:
        raise exceptions.InvalidToken()
    payload = jwt.verifyAccessToken(bearer.credentials)
    user = session.query(User).filter(User.id == payload["userId"]).first()
    if user is None:
        raise exceptions.InvalidToken()
    return user


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------
def userPermission(user: User, permission: Permission) -> bool:
    """
    Validate that the role of an account grants the required capability.

    Raises:
        exceptions.NoPermission: If the role does not hold the permission.
    """
    if user and hasPermission(user.role, permission):
        return True
    raise exceptions.NoPermission()


def userScope(user: User, query: Query) -> Query:
    """
    Restrict a `User` query to the accounts visible to the caller.

    - Superadmin: every account.
    - Admin: its own account and the accounts it created (`myadmin`).
    - Parent: its own account.
    """
    if user.role == UserRole.SUPERADMIN:
        return query
    if user.role == UserRole.ADMIN:
        return query.filter((User.myadmin == user.email) | (User.id == user.id))
    return query.filter(User.id == user.id)


def agencyScope(user: User, query: Query) -> Query:
    """Restrict an `Agency` query to the agencies granted to the caller."""
    if hasPermission(user.role, Permission.VIEW_ANY_AGENCY):
        return query
    return query.filter(Agency.id.in_([agency.id for agency in user.agencies]))


def agencyUpdateFields(user: User, fieldsSet: Iterable[str]) -> bool:
    """
    Validate the fields an account is changing on an agency.

    Accounts without `UPDATE_AGENCY_IDENTITY` may only change the contact
    details and the route list of the agency.

    Raises:
        exceptions.NoPermission: If a restricted field is part of the update.
    """
    if hasPermission(user.role, Permission.UPDATE_AGENCY_IDENTITY):
        return True
    if set(fieldsSet) - ADMIN_AGENCY_FIELDS:
        raise exceptions.NoPermission()
    return True


def isProtected(user: User) -> bool:
    return bool(PROTECTED_SUPERADMIN_EMAIL) and user.email == PROTECTED_SUPERADMIN_EMAIL


def protectedAccountUpdate(
    caller: User, target: User, email: Optional[str], role: Optional[UserRole]
) -> bool:
    """
    Enforce the rules of the protected superadmin account on updates.

    The account can be updated only by itself, and never gets its email or
    role changed.

    Raises:
        exceptions.ProtectedAccount: If any of the rules is violated.
    """
    if not isProtected(target):
        return True
    if caller.id != target.id:
        raise exceptions.ProtectedAccount()
    if email is not None and email != target.email:
        raise exceptions.ProtectedAccount()
    if role is not None and role != target.role:
        raise exceptions.ProtectedAccount()
    return True


def protectedAccountDelete(target: User) -> bool:
    """
    Raises:
        exceptions.ProtectedAccount: If the target is the protected superadmin.
    """
    if isProtected(target):
        raise exceptions.ProtectedAccount()
    return True


# ---------------------------------------------------------------------------
# Value validation
# ---------------------------------------------------------------------------
def stopTimes(arrival_time: str, departure_time: str) -> bool:
    """
    Validate that a departure time is later than its arrival time.

    Comparison is done on the number of seconds since the start of the
    service day, so `9:00:00` and `10:00:00` order correctly.

    Raises:
        exceptions.InvalidValue: If the departure is not later than the arrival.
    """
    if toSeconds(departure_time) <= toSeconds(arrival_time):
        raise exceptions.InvalidValue("departure_time")
    return True


def calendarWindow(start_date, end_date) -> bool:
    """
    Raises:
        exceptions.InvalidValue: If the end date is not later than the start date.
    """
    if end_date <= start_date:
        raise exceptions.InvalidValue("end_date")
    return True


def driverCount(drivers: List[str]) -> bool:
    """
    Validate the number of drivers assigned to a vehicle.

    Raises:
        exceptions.InvalidDriverCount: If the list is empty or too long.
    """
    if not (MIN_DRIVERS_PER_VEHICLE <= len(drivers) <= MAX_DRIVERS_PER_VEHICLE):
        raise exceptions.InvalidDriverCount(
            MIN_DRIVERS_PER_VEHICLE, MAX_DRIVERS_PER_VEHICLE
        )
    return True
