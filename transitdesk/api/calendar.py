from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Calendar, Trip, sessionMaker
from transitdesk.src import exceptions, validators, getters
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import Permission
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import InputSchema, MessageResponse, ORMSchema, serialize
from transitdesk.src.urls import URL_CALENDAR

route_calendar = APIRouter()
WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


## Output Schema
class CalendarSchema(ORMSchema):
    id: int
    service_id: str
    monday: bool
    tuesday: bool
    wednesday: bool
    thursday: bool
    friday: bool
    saturday: bool
    sunday: bool
    start_date: date
    end_date: date
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    service_id: str = Field(min_length=1, max_length=64)
    monday: bool
    tuesday: bool
    wednesday: bool
    thursday: bool
    friday: bool
    saturday: bool
    sunday: bool
    start_date: date
    end_date: date


class UpdateForm(InputSchema):
    service_id: str | None = Field(default=None, min_length=1, max_length=64)
    monday: bool | None = None
    tuesday: bool | None = None
    wednesday: bool | None = None
    thursday: bool | None = None
    friday: bool | None = None
    saturday: bool | None = None
    sunday: bool | None = None
    start_date: date | None = None
    end_date: date | None = None


## Query Parameters
class QueryParams(BaseModel):
    service_id: str | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkServiceId(session: Session, serviceId: str):
    if session.query(Calendar).filter(Calendar.service_id == serviceId).first():
        raise exceptions.UniqueViolation(
            "A calendar with this service_id already exists"
        )


def searchCalendar(session: Session, qParam: QueryParams) -> List[Calendar]:
    query = session.query(Calendar)
    # Filters
    if qParam.service_id is not None:
        query = query.filter(Calendar.service_id == qParam.service_id)
    # Pagination
    query = query.order_by(Calendar.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_calendar.post(
    URL_CALENDAR,
    tags=["Calendar"],
    response_model=CalendarSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidValue(Calendar.end_date),
            exceptions.UniqueViolation("A calendar with this service_id already exists"),
        ]
    ),
    description="""
    Creates a new service calendar.
    Only superadmins and admins can create calendars.
    The end date must be later than the start date.
    """,
)
async def create_calendar(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_CALENDAR)
        validators.calendarWindow(fParam.start_date, fParam.end_date)
        checkServiceId(session, fParam.service_id)

        calendar = Calendar(**fParam.model_dump())
        session.add(calendar)
        session.commit()
        session.refresh(calendar)

        calendarData = serialize(CalendarSchema, calendar)
        logEvent(user, request_info, calendarData)
        return calendarData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_calendar.put(
    URL_CALENDAR + "/{id}",
    tags=["Calendar"],
    response_model=CalendarSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidValue(Calendar.end_date),
        ]
    ),
    description="""
    Updates an existing service calendar.
    Only superadmins and admins can update calendars.
    The resulting end date must remain later than the start date.
    """,
)
async def update_calendar(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_CALENDAR)
        calendar = session.query(Calendar).filter(Calendar.id == id).first()
        if calendar is None:
            raise exceptions.InvalidIdentifier()
        if fParam.service_id is not None and fParam.service_id != calendar.service_id:
            checkServiceId(session, fParam.service_id)
        validators.calendarWindow(
            fParam.start_date or calendar.start_date,
            fParam.end_date or calendar.end_date,
        )

        updateIfChanged(
            calendar,
            fParam,
            [Calendar.service_id.key, Calendar.start_date.key, Calendar.end_date.key]
            + WEEKDAYS,
        )
        haveUpdates = session.is_modified(calendar)
        if haveUpdates:
            session.commit()
            session.refresh(calendar)
        calendarData = serialize(CalendarSchema, calendar)
        if haveUpdates:
            logEvent(user, request_info, calendarData)
        return calendarData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_calendar.delete(
    URL_CALENDAR + "/{id}",
    tags=["Calendar"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.DataInUse(Calendar),
        ]
    ),
    description="""
    Deletes a service calendar.
    Only superadmins and admins can delete calendars.
    A calendar still referenced by trips cannot be deleted.
    """,
)
async def delete_calendar(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    calendarLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_CALENDAR)
        calendarLock = acquireLock(Calendar.__tablename__, id)
        calendar = session.query(Calendar).filter(Calendar.id == id).first()
        if calendar is None:
            raise exceptions.InvalidIdentifier()
        if session.query(Trip).filter(Trip.service_id == id).first():
            raise exceptions.DataInUse(Calendar)

        calendarData = serialize(CalendarSchema, calendar)
        session.delete(calendar)
        session.commit()
        logEvent(user, request_info, calendarData)
        return {"message": "Calendar deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(calendarLock)
        session.close()


@route_calendar.get(
    URL_CALENDAR,
    tags=["Calendar"],
    response_model=List[CalendarSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every service calendar.
    """,
)
async def fetch_calendars(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(CalendarSchema, x) for x in searchCalendar(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_calendar.get(
    URL_CALENDAR + "/{id}",
    tags=["Calendar"],
    response_model=CalendarSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_calendar(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        calendar = session.query(Calendar).filter(Calendar.id == id).first()
        if calendar is None:
            raise exceptions.InvalidIdentifier()
        return serialize(CalendarSchema, calendar)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
