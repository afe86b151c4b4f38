from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Stop, StopTime, Trip, sessionMaker
from transitdesk.src import exceptions, validators, getters
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.constants import REGEX_GTFS_TIME
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdRef,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_STOP_TIME

route_stop_time = APIRouter()


## Output Schema
class StopTimeSchema(ORMSchema):
    id: int
    trip: IdRef
    stop: IdRef
    arrival_time: str
    departure_time: str
    stop_sequence: int
    pickup_type: Optional[int]
    drop_off_type: Optional[int]
    updated_on: Optional[datetime]
    created_on: datetime


class StopBriefSchema(ORMSchema):
    id: int
    stop_name: str
    stop_lat: float
    stop_lon: float


class TripStopTimeSchema(StopTimeSchema):
    stop: StopBriefSchema


## Input Forms
class CreateForm(InputSchema):
    trip: int
    stop: int
    arrival_time: str = Field(pattern=REGEX_GTFS_TIME, examples=["08:00:00"])
    departure_time: str = Field(pattern=REGEX_GTFS_TIME, examples=["08:01:00"])
    stop_sequence: int = Field(ge=0)
    pickup_type: int | None = Field(default=None, ge=0, le=3)
    drop_off_type: int | None = Field(default=None, ge=0, le=3)


class UpdateForm(InputSchema):
    trip: int | None = Field(default=None)
    stop: int | None = Field(default=None)
    arrival_time: str | None = Field(default=None, pattern=REGEX_GTFS_TIME)
    departure_time: str | None = Field(default=None, pattern=REGEX_GTFS_TIME)
    stop_sequence: int | None = Field(default=None, ge=0)
    pickup_type: int | None = Field(default=None, ge=0, le=3)
    drop_off_type: int | None = Field(default=None, ge=0, le=3)


## Query Parameters
class QueryParams(BaseModel):
    trip: int | None = Field(Query(default=None))
    stop: int | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def getTrip(session: Session, tripId: int) -> Trip:
    trip = session.query(Trip).filter(Trip.id == tripId).first()
    if trip is None:
        raise exceptions.UnknownValue(StopTime.trip)
    return trip


def getStop(session: Session, stopId: int) -> Stop:
    stop = session.query(Stop).filter(Stop.id == stopId).first()
    if stop is None:
        raise exceptions.UnknownValue(StopTime.stop)
    return stop


def checkPair(session: Session, tripId: int, stopId: int, stopTime=None):
    query = session.query(StopTime).filter(
        StopTime.trip_id == tripId, StopTime.stop_id == stopId
    )
    if stopTime is not None:
        query = query.filter(StopTime.id != stopTime.id)
    if query.first() is not None:
        raise exceptions.DuplicateStopTime()


def searchStopTime(session: Session, qParam: QueryParams) -> List[StopTime]:
    query = session.query(StopTime)
    # Filters
    if qParam.trip is not None:
        query = query.filter(StopTime.trip_id == qParam.trip)
    if qParam.stop is not None:
        query = query.filter(StopTime.stop_id == qParam.stop)
    # Pagination
    query = query.order_by(StopTime.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_stop_time.post(
    URL_STOP_TIME,
    tags=["Stop Time"],
    response_model=StopTimeSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidValue(StopTime.departure_time),
            exceptions.DuplicateStopTime(),
            exceptions.UnknownValue(StopTime.trip),
            exceptions.UnknownValue(StopTime.stop),
        ]
    ),
    description="""
    Schedules a trip at a stop.
    Times use the GTFS `H:MM:SS` format and may run past `24:00:00`.
    The departure time must be later than the arrival time.
    A trip can be scheduled at a given stop only once.
    The stop time is added to the stop time list of its trip.
    """,
)
async def create_stop_time(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.stopTimes(fParam.arrival_time, fParam.departure_time)
        trip = getTrip(session, fParam.trip)
        stop = getStop(session, fParam.stop)
        checkPair(session, trip.id, stop.id)

        stopTime = StopTime(
            trip=trip,
            stop=stop,
            arrival_time=fParam.arrival_time,
            departure_time=fParam.departure_time,
            stop_sequence=fParam.stop_sequence,
            pickup_type=fParam.pickup_type,
            drop_off_type=fParam.drop_off_type,
        )
        session.add(stopTime)
        session.commit()
        session.refresh(stopTime)

        stopTimeData = serialize(StopTimeSchema, stopTime)
        logEvent(user, request_info, stopTimeData)
        return stopTimeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop_time.put(
    URL_STOP_TIME + "/{id}",
    tags=["Stop Time"],
    response_model=StopTimeSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidValue(StopTime.departure_time),
            exceptions.DuplicateStopTime(),
        ]
    ),
    description="""
    Updates a stop time.
    Only the provided fields change, the resulting times and trip/stop pair are validated again.
    Changing the trip moves the stop time from the stop time list of the old trip to the new one.
    """,
)
async def update_stop_time(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        stopTime = session.query(StopTime).filter(StopTime.id == id).first()
        if stopTime is None:
            raise exceptions.InvalidIdentifier()

        validators.stopTimes(
            fParam.arrival_time or stopTime.arrival_time,
            fParam.departure_time or stopTime.departure_time,
        )
        trip = stopTime.trip if fParam.trip is None else getTrip(session, fParam.trip)
        stop = stopTime.stop if fParam.stop is None else getStop(session, fParam.stop)
        if trip.id != stopTime.trip_id or stop.id != stopTime.stop_id:
            checkPair(session, trip.id, stop.id, stopTime)
            stopTime.trip = trip
            stopTime.stop = stop

        updateIfChanged(
            stopTime,
            fParam,
            [
                StopTime.arrival_time.key,
                StopTime.departure_time.key,
                StopTime.stop_sequence.key,
                StopTime.pickup_type.key,
                StopTime.drop_off_type.key,
            ],
        )
        haveUpdates = session.is_modified(stopTime)
        if haveUpdates:
            session.commit()
            session.refresh(stopTime)
        stopTimeData = serialize(StopTimeSchema, stopTime)
        if haveUpdates:
            logEvent(user, request_info, stopTimeData)
        return stopTimeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop_time.delete(
    URL_STOP_TIME + "/{id}",
    tags=["Stop Time"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Deletes a stop time and removes it from the stop time list of its trip.
    """,
)
async def delete_stop_time(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    stopTimeLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        stopTimeLock = acquireLock(StopTime.__tablename__, id)
        stopTime = session.query(StopTime).filter(StopTime.id == id).first()
        if stopTime is None:
            raise exceptions.InvalidIdentifier()

        stopTimeData = serialize(StopTimeSchema, stopTime)
        session.delete(stopTime)
        session.commit()
        logEvent(user, request_info, stopTimeData)
        return {"message": "Stop time deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(stopTimeLock)
        session.close()


@route_stop_time.get(
    URL_STOP_TIME,
    tags=["Stop Time"],
    response_model=List[StopTimeSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every stop time.
    Supports filtering by trip and stop.
    """,
)
async def fetch_stop_times(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(StopTimeSchema, x) for x in searchStopTime(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop_time.get(
    URL_STOP_TIME + "/trips/{tripId}",
    tags=["Stop Time"],
    response_model=List[TripStopTimeSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches the stop times of a trip ordered by `stop_sequence`.
    Each stop time embeds the name and position of its stop.
    Responds with 404 when the trip has no stop time.
    """,
)
async def fetch_trip_stop_times(
    tripId: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        stopTimes = (
            session.query(StopTime)
            .filter(StopTime.trip_id == tripId)
            .order_by(StopTime.stop_sequence.asc())
            .all()
        )
        if not stopTimes:
            raise exceptions.InvalidIdentifier()
        return [serialize(TripStopTimeSchema, x) for x in stopTimes]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop_time.get(
    URL_STOP_TIME + "/{id}",
    tags=["Stop Time"],
    response_model=StopTimeSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_stop_time(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        stopTime = session.query(StopTime).filter(StopTime.id == id).first()
        if stopTime is None:
            raise exceptions.InvalidIdentifier()
        return serialize(StopTimeSchema, stopTime)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
