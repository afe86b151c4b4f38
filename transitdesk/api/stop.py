from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.src.db import Stop, sessionMaker
from transitdesk.src import exceptions, getters
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import IdList, InputSchema, MessageResponse, ORMSchema, serialize
from transitdesk.src.urls import URL_STOP

route_stop = APIRouter()


## Output Schema
class StopSchema(ORMSchema):
    id: int
    stop_id: str
    stop_name: str
    stop_lat: float
    stop_lon: float
    stop_desc: Optional[str]
    zone_id: Optional[str]
    stop_url: Optional[str]
    stop_times: IdList
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    stop_id: str = Field(min_length=1, max_length=64)
    stop_name: str = Field(min_length=1, max_length=128)
    stop_lat: float = Field(ge=-90, le=90)
    stop_lon: float = Field(ge=-180, le=180)
    stop_desc: str | None = Field(default=None, max_length=512)
    zone_id: str | None = Field(default=None, max_length=64)
    stop_url: str | None = Field(default=None, max_length=256)


class UpdateForm(InputSchema):
    stop_id: str | None = Field(default=None, min_length=1, max_length=64)
    stop_name: str | None = Field(default=None, min_length=1, max_length=128)
    stop_lat: float | None = Field(default=None, ge=-90, le=90)
    stop_lon: float | None = Field(default=None, ge=-180, le=180)
    stop_desc: str | None = Field(default=None, max_length=512)
    zone_id: str | None = Field(default=None, max_length=64)
    stop_url: str | None = Field(default=None, max_length=256)


## Query Parameters
class QueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    zone_id: str | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkStopId(session: Session, stopId: str):
    if session.query(Stop).filter(Stop.stop_id == stopId).first():
        raise exceptions.UniqueViolation("A stop with this stop_id already exists")


def searchStop(session: Session, qParam: QueryParams) -> List[Stop]:
    query = session.query(Stop)
    # Filters
    if qParam.name is not None:
        query = query.filter(Stop.stop_name.ilike(f"%{qParam.name}%"))
    if qParam.zone_id is not None:
        query = query.filter(Stop.zone_id == qParam.zone_id)
    # Pagination
    query = query.order_by(Stop.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_stop.post(
    URL_STOP,
    tags=["Stop"],
    response_model=StopSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.UniqueViolation("A stop with this stop_id already exists")]
    ),
    description="""
    Creates a new stop.
    This endpoint does not require authentication.
    """,
)
async def create_stop(
    fParam: CreateForm,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        checkStopId(session, fParam.stop_id)

        stop = Stop(**fParam.model_dump())
        session.add(stop)
        session.commit()
        session.refresh(stop)

        stopData = serialize(StopSchema, stop)
        logEvent(None, request_info, stopData)
        return stopData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop.put(
    URL_STOP + "/{id}",
    tags=["Stop"],
    response_model=StopSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidIdentifier(),
            exceptions.UniqueViolation("A stop with this stop_id already exists"),
        ]
    ),
    description="""
    Updates an existing stop.
    This endpoint does not require authentication.
    """,
)
async def update_stop(
    id: int,
    fParam: UpdateForm,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        stop = session.query(Stop).filter(Stop.id == id).first()
        if stop is None:
            raise exceptions.InvalidIdentifier()
        if fParam.stop_id is not None and fParam.stop_id != stop.stop_id:
            checkStopId(session, fParam.stop_id)

        updateIfChanged(
            stop,
            fParam,
            [
                Stop.stop_id.key,
                Stop.stop_name.key,
                Stop.stop_lat.key,
                Stop.stop_lon.key,
                Stop.stop_desc.key,
                Stop.zone_id.key,
                Stop.stop_url.key,
            ],
        )
        haveUpdates = session.is_modified(stop)
        if haveUpdates:
            session.commit()
            session.refresh(stop)
        stopData = serialize(StopSchema, stop)
        if haveUpdates:
            logEvent(None, request_info, stopData)
        return stopData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop.delete(
    URL_STOP + "/{id}",
    tags=["Stop"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier()]),
    description="""
    Deletes a stop along with every stop time scheduled at it.
    This endpoint does not require authentication.
    """,
)
async def delete_stop(
    id: int,
    request_info=Depends(getters.requestInfo),
):
    stopLock = None
    try:
        session = sessionMaker()
        stopLock = acquireLock(Stop.__tablename__, id)
        stop = session.query(Stop).filter(Stop.id == id).first()
        if stop is None:
            raise exceptions.InvalidIdentifier()

        stopData = serialize(StopSchema, stop)
        session.delete(stop)
        session.commit()
        logEvent(None, request_info, stopData)
        return {"message": "Stop deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(stopLock)
        session.close()


@route_stop.get(
    URL_STOP,
    tags=["Stop"],
    response_model=List[StopSchema],
    description="""
    Fetches every stop.
    Supports filtering by name and fare zone.
    """,
)
async def fetch_stops(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return [serialize(StopSchema, x) for x in searchStop(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_stop.get(
    URL_STOP + "/{id}",
    tags=["Stop"],
    response_model=StopSchema,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier()]),
)
async def fetch_stop(id: int):
    try:
        session = sessionMaker()
        stop = session.query(Stop).filter(Stop.id == id).first()
        if stop is None:
            raise exceptions.InvalidIdentifier()
        return serialize(StopSchema, stop)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
