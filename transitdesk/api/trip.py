from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Calendar, Route, Trip, Vehicle, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import DirectionType, Permission
from transitdesk.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdList,
    IdRef,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_TRIP

route_trip = APIRouter()


## Output Schema
class TripSchema(ORMSchema):
    id: int
    route: IdRef
    trip_id: str
    service_id: int
    vehicle_id: Optional[int]
    trip_headsign: Optional[str]
    trip_short_name: Optional[str]
    direction_id: Optional[int]
    block_id: Optional[str]
    shape_id: Optional[str]
    stop_times: IdList
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    route: int
    trip_id: str = Field(min_length=1, max_length=64)
    service_id: int
    vehicle_id: int | None = Field(default=None)
    trip_headsign: str | None = Field(default=None, max_length=128)
    trip_short_name: str | None = Field(default=None, max_length=64)
    direction_id: DirectionType | None = Field(
        default=None, description=enumStr(DirectionType)
    )
    block_id: str | None = Field(default=None, max_length=64)
    shape_id: str | None = Field(default=None, max_length=64)


class UpdateForm(InputSchema):
    route: int | None = Field(default=None)
    trip_id: str | None = Field(default=None, min_length=1, max_length=64)
    service_id: int | None = Field(default=None)
    vehicle_id: int | None = Field(default=None)
    trip_headsign: str | None = Field(default=None, max_length=128)
    trip_short_name: str | None = Field(default=None, max_length=64)
    direction_id: DirectionType | None = Field(
        default=None, description=enumStr(DirectionType)
    )
    block_id: str | None = Field(default=None, max_length=64)
    shape_id: str | None = Field(default=None, max_length=64)


## Query Parameters
class QueryParams(BaseModel):
    route: int | None = Field(Query(default=None))
    service_id: int | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def getRoute(session: Session, routeId: int) -> Route:
    route = session.query(Route).filter(Route.id == routeId).first()
    if route is None:
        raise exceptions.UnknownValue(Trip.route)
    return route


def checkReferences(session: Session, serviceId=None, vehicleId=None):
    if serviceId is not None:
        if session.query(Calendar).filter(Calendar.id == serviceId).first() is None:
            raise exceptions.UnknownValue(Trip.service_id)
    if vehicleId is not None:
        if session.query(Vehicle).filter(Vehicle.id == vehicleId).first() is None:
            raise exceptions.UnknownValue(Trip.vehicle_id)


def checkTripId(session: Session, tripId: str):
    if session.query(Trip).filter(Trip.trip_id == tripId).first():
        raise exceptions.UniqueViolation("A trip with this trip_id already exists")


def searchTrip(session: Session, qParam: QueryParams) -> List[Trip]:
    query = session.query(Trip)
    # Filters
    if qParam.route is not None:
        query = query.filter(Trip.route_id == qParam.route)
    if qParam.service_id is not None:
        query = query.filter(Trip.service_id == qParam.service_id)
    # Pagination
    query = query.order_by(Trip.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_trip.post(
    URL_TRIP,
    tags=["Trip"],
    response_model=TripSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue(Trip.route),
            exceptions.UnknownValue(Trip.service_id),
            exceptions.UniqueViolation("A trip with this trip_id already exists"),
        ]
    ),
    description="""
    Creates a new trip on an existing route.
    Only superadmins and admins can create trips.
    The route, the service calendar and the optional vehicle must exist.
    The trip is added to the trip list of its route.
    """,
)
async def create_trip(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_TRIP)
        route = getRoute(session, fParam.route)
        checkReferences(session, fParam.service_id, fParam.vehicle_id)
        checkTripId(session, fParam.trip_id)

        trip = Trip(
            trip_id=fParam.trip_id,
            service_id=fParam.service_id,
            vehicle_id=fParam.vehicle_id,
            trip_headsign=fParam.trip_headsign,
            trip_short_name=fParam.trip_short_name,
            direction_id=fParam.direction_id,
            block_id=fParam.block_id,
            shape_id=fParam.shape_id,
        )
        relations.attachTrip(trip, route)
        session.add(trip)
        session.commit()
        session.refresh(trip)

        tripData = serialize(TripSchema, trip)
        logEvent(user, request_info, tripData)
        return tripData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.put(
    URL_TRIP + "/{id}",
    tags=["Trip"],
    response_model=TripSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Trip.route),
        ]
    ),
    description="""
    Updates an existing trip.
    Only superadmins and admins can update trips.
    Changing the route moves the trip from the trip list of the old route to the new one.
    """,
)
async def update_trip(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_TRIP)
        trip = session.query(Trip).filter(Trip.id == id).first()
        if trip is None:
            raise exceptions.InvalidIdentifier()
        if fParam.trip_id is not None and fParam.trip_id != trip.trip_id:
            checkTripId(session, fParam.trip_id)
        checkReferences(session, fParam.service_id, fParam.vehicle_id)

        if fParam.route is not None and fParam.route != trip.route_id:
            relations.attachTrip(trip, getRoute(session, fParam.route))
        updateIfChanged(
            trip,
            fParam,
            [
                Trip.trip_id.key,
                Trip.service_id.key,
                Trip.vehicle_id.key,
                Trip.trip_headsign.key,
                Trip.trip_short_name.key,
                Trip.direction_id.key,
                Trip.block_id.key,
                Trip.shape_id.key,
            ],
        )
        haveUpdates = session.is_modified(trip)
        if haveUpdates:
            session.commit()
            session.refresh(trip)
        tripData = serialize(TripSchema, trip)
        if haveUpdates:
            logEvent(user, request_info, tripData)
        return tripData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.delete(
    URL_TRIP + "/{id}",
    tags=["Trip"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes a trip along with its stop times and the vehicle assignments targeting it.
    Only superadmins and admins can delete trips.
    The trip leaves the trip list of its route and the vehicles assigned to it are unassigned.
    """,
)
async def delete_trip(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    tripLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_TRIP)
        tripLock = acquireLock(Trip.__tablename__, id)
        trip = session.query(Trip).filter(Trip.id == id).first()
        if trip is None:
            raise exceptions.InvalidIdentifier()

        tripData = serialize(TripSchema, trip)
        relations.releaseTrip(session, trip)
        session.delete(trip)
        session.commit()
        logEvent(user, request_info, tripData)
        return {"message": "Trip deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(tripLock)
        session.close()


@route_trip.get(
    URL_TRIP,
    tags=["Trip"],
    response_model=List[TripSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every trip.
    Supports filtering by route and service calendar.
    """,
)
async def fetch_trips(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(TripSchema, x) for x in searchTrip(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.get(
    URL_TRIP + "/routes/{routeId}",
    tags=["Trip"],
    response_model=List[TripSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches the trips of a route.
    Responds with 404 when the route has no trip.
    """,
)
async def fetch_route_trips(
    routeId: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        trips = (
            session.query(Trip)
            .filter(Trip.route_id == routeId)
            .order_by(Trip.id.asc())
            .all()
        )
        if not trips:
            raise exceptions.InvalidIdentifier()
        return [serialize(TripSchema, x) for x in trips]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_trip.get(
    URL_TRIP + "/{id}",
    tags=["Trip"],
    response_model=TripSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_trip(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        trip = session.query(Trip).filter(Trip.id == id).first()
        if trip is None:
            raise exceptions.InvalidIdentifier()
        return serialize(TripSchema, trip)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
