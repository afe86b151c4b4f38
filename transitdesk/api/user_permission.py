from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.api.agency import AgencySchema
from transitdesk.api.route import RouteSchema
from transitdesk.api.trip import TripSchema
from transitdesk.api.user import UserSchema
from transitdesk.src.db import Agency, Route, Trip, User, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.enums import Permission, UserRole
from transitdesk.src.functions import fuseExceptionResponses
from transitdesk.src.schemas import InputSchema, serialize
from transitdesk.src.urls import URL_USER_PERMISSION

route_user_permission = APIRouter()


## Output Schema
class AgencyAdminResult(BaseModel):
    message: str
    user: UserSchema


class RouteAgencyResult(BaseModel):
    message: str
    route: RouteSchema
    agency: AgencySchema


class TripRouteResult(BaseModel):
    message: str
    trip: TripSchema


## Input Forms
class AgencyAdminForm(InputSchema):
    user_id: int = Field(alias="userId")
    agency_id: int = Field(alias="agencyId")


class RouteAgencyForm(InputSchema):
    agency_id: int = Field(alias="agencyId")
    route_id: int = Field(alias="routeId")


class TripRouteForm(InputSchema):
    trip_id: int = Field(alias="tripId")
    route_id: int = Field(alias="routeId")


## Function
def getAdmin(session, userId: int) -> User:
    user = session.query(User).filter(User.id == userId).first()
    if user is None:
        raise exceptions.UnknownValue("userId")
    if user.role != UserRole.ADMIN:
        raise exceptions.InvalidValue("userId")
    return user


def getAgency(session, agencyId: int) -> Agency:
    agency = session.query(Agency).filter(Agency.id == agencyId).first()
    if agency is None:
        raise exceptions.UnknownValue("agencyId")
    return agency


def getRoute(session, routeId: int) -> Route:
    route = session.query(Route).filter(Route.id == routeId).first()
    if route is None:
        raise exceptions.UnknownValue("routeId")
    return route


def getTrip(session, tripId: int) -> Trip:
    trip = session.query(Trip).filter(Trip.id == tripId).first()
    if trip is None:
        raise exceptions.UnknownValue("tripId")
    return trip


## API endpoints
@route_user_permission.post(
    URL_USER_PERMISSION + "/assign-agency",
    tags=["User Permission"],
    response_model=AgencyAdminResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidValue("userId"),
            exceptions.AlreadyAssigned(Agency, User),
            exceptions.UnknownValue("agencyId"),
        ]
    ),
    description="""
    Grants an agency to an admin account.
    Only superadmins can grant agencies, and an admin can hold a single agency.
    The agency is also granted to every account the admin created, so its parent accounts inherit it.
    """,
)
async def assign_agency(
    fParam: AgencyAdminForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.ASSIGN_AGENCY_ADMIN)
        admin = getAdmin(session, fParam.user_id)
        if admin.agencies:
            raise exceptions.AlreadyAssigned(Agency, User)
        agency = getAgency(session, fParam.agency_id)

        relations.grantAgency(session, admin, agency)
        session.commit()
        session.refresh(admin)

        userData = serialize(UserSchema, admin)
        logEvent(caller, request_info, {"user": userData, "agency_id": agency.id})
        return {"message": "Agency assigned successfully", "user": userData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user_permission.post(
    URL_USER_PERMISSION + "/unassign-agency",
    tags=["User Permission"],
    response_model=AgencyAdminResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidValue("userId"),
            exceptions.NotAssigned(Agency, User),
        ]
    ),
    description="""
    Revokes an agency from an admin account.
    Only superadmins can revoke agencies.
    The agency is also revoked from every account the admin created, parents included.
    """,
)
async def unassign_agency(
    fParam: AgencyAdminForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.ASSIGN_AGENCY_ADMIN)
        admin = getAdmin(session, fParam.user_id)
        agency = next((x for x in admin.agencies if x.id == fParam.agency_id), None)
        if agency is None:
            raise exceptions.NotAssigned(Agency, User)

        relations.revokeAgency(session, admin, agency)
        session.commit()
        session.refresh(admin)

        userData = serialize(UserSchema, admin)
        logEvent(caller, request_info, {"user": userData, "agency_id": agency.id})
        return {"message": "Agency unassigned successfully", "user": userData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user_permission.post(
    URL_USER_PERMISSION + "/assign-route-agency",
    tags=["User Permission"],
    response_model=RouteAgencyResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue("agencyId"),
            exceptions.UnknownValue("routeId"),
            exceptions.AlreadyAssigned(Route, Agency),
        ]
    ),
    description="""
    Moves a route under an agency.
    Only superadmins can assign routes to agencies.
    The route leaves the route list of its previous agency.
    """,
)
async def assign_route_agency(
    fParam: RouteAgencyForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.ASSIGN_ROUTE_AGENCY)
        agency = getAgency(session, fParam.agency_id)
        route = getRoute(session, fParam.route_id)
        if route.agency_id == agency.id:
            raise exceptions.AlreadyAssigned(Route, Agency)

        relations.attachRoute(route, agency)
        session.commit()
        session.refresh(route)
        session.refresh(agency)

        routeData = serialize(RouteSchema, route)
        logEvent(caller, request_info, routeData)
        return {
            "message": "Route assigned successfully",
            "route": routeData,
            "agency": serialize(AgencySchema, agency),
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user_permission.post(
    URL_USER_PERMISSION + "/unassign-route-agency",
    tags=["User Permission"],
    response_model=RouteAgencyResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue("agencyId"),
            exceptions.UnknownValue("routeId"),
        ]
    ),
    description="""
    Detaches a route from its agency.
    Only superadmins can unassign routes.
    Responds with 404 when the route does not exist or is not assigned to the agency.
    """,
)
async def unassign_route_agency(
    fParam: RouteAgencyForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.ASSIGN_ROUTE_AGENCY)
        agency = getAgency(session, fParam.agency_id)
        route = getRoute(session, fParam.route_id)
        if route.agency_id != agency.id:
            raise exceptions.UnknownValue("routeId")

        relations.attachRoute(route, None)
        session.commit()
        session.refresh(route)
        session.refresh(agency)

        routeData = serialize(RouteSchema, route)
        logEvent(caller, request_info, routeData)
        return {
            "message": "Route unassigned successfully",
            "route": routeData,
            "agency": serialize(AgencySchema, agency),
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user_permission.post(
    URL_USER_PERMISSION + "/assign-trip-route",
    tags=["User Permission"],
    response_model=TripRouteResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue("tripId"),
            exceptions.UnknownValue("routeId"),
            exceptions.AlreadyAssigned(Trip, Route),
        ]
    ),
    description="""
    Moves a trip under a route.
    Only superadmins and admins can assign trips to routes.
    The trip leaves the trip list of its previous route.
    """,
)
async def assign_trip_route(
    fParam: TripRouteForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.ASSIGN_TRIP_ROUTE)
        trip = getTrip(session, fParam.trip_id)
        route = getRoute(session, fParam.route_id)
        if trip.route_id == route.id:
            raise exceptions.AlreadyAssigned(Trip, Route)

        relations.attachTrip(trip, route)
        session.commit()
        session.refresh(trip)

        tripData = serialize(TripSchema, trip)
        logEvent(caller, request_info, tripData)
        return {"message": "Trip assigned successfully", "trip": tripData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user_permission.post(
    URL_USER_PERMISSION + "/unassign-trip-route",
    tags=["User Permission"],
    response_model=TripRouteResult,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue("tripId"),
            exceptions.UnknownValue("routeId"),
            exceptions.NotAssigned(Trip, Route),
        ]
    ),
    description="""
    Detaches a trip from its route.
    Only superadmins and admins can unassign trips.
    """,
)
async def unassign_trip_route(
    fParam: TripRouteForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.ASSIGN_TRIP_ROUTE)
        trip = getTrip(session, fParam.trip_id)
        route = getRoute(session, fParam.route_id)
        if trip.route_id != route.id:
            raise exceptions.NotAssigned(Trip, Route)

        relations.attachTrip(trip, None)
        session.commit()
        session.refresh(trip)

        tripData = serialize(TripSchema, trip)
        logEvent(caller, request_info, tripData)
        return {"message": "Trip unassigned successfully", "trip": tripData}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
