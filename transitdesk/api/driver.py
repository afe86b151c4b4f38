from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, EmailStr, Field
from pydantic_extra_types.phone_numbers import PhoneNumber

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Driver, sessionMaker
from transitdesk.src import exceptions, validators, getters
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import Permission
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import InputSchema, MessageResponse, ORMSchema, serialize
from transitdesk.src.urls import URL_DRIVER

route_driver = APIRouter()


## Output Schema
class DriverSchema(ORMSchema):
    id: int
    username: str
    email: str
    cin_number: str = Field(alias="cinNumber")
    phone_number: str = Field(alias="phoneNumber")
    vehicle_id: Optional[int] = Field(alias="assignedVehicle")
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    username: str = Field(min_length=1, max_length=64)
    email: EmailStr
    cin_number: str = Field(alias="cinNumber", min_length=1, max_length=32)
    phone_number: PhoneNumber = Field(alias="phoneNumber")


class UpdateForm(InputSchema):
    username: str | None = Field(default=None, min_length=1, max_length=64)
    email: EmailStr | None = Field(default=None)
    cin_number: str | None = Field(
        alias="cinNumber", default=None, min_length=1, max_length=32
    )
    phone_number: PhoneNumber | None = Field(alias="phoneNumber", default=None)


## Query Parameters
class QueryParams(BaseModel):
    assigned: bool | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkUnique(session: Session, driver: Driver | None, email=None, cinNumber=None):
    for column, value, name in (
        (Driver.email, email, "email"),
        (Driver.cin_number, cinNumber, "cinNumber"),
    ):
        if value is None:
            continue
        query = session.query(Driver).filter(column == value)
        if driver is not None:
            query = query.filter(Driver.id != driver.id)
        if query.first() is not None:
            raise exceptions.UniqueViolation(f"A driver with this {name} already exists")


def searchDriver(session: Session, qParam: QueryParams) -> List[Driver]:
    query = session.query(Driver)
    # Filters
    if qParam.assigned is True:
        query = query.filter(Driver.vehicle_id.is_not(None))
    elif qParam.assigned is False:
        query = query.filter(Driver.vehicle_id.is_(None))
    # Pagination
    query = query.order_by(Driver.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_driver.post(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UniqueViolation("A driver with this email already exists"),
        ]
    ),
    description="""
    Registers a new driver.
    Only superadmins and admins can register drivers.
    The driver is not bound to any vehicle until a vehicle lists its CIN number.
    """,
)
async def create_driver(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_DRIVER)
        checkUnique(session, None, fParam.email, fParam.cin_number)

        driver = Driver(
            username=fParam.username,
            email=fParam.email,
            cin_number=fParam.cin_number,
            phone_number=fParam.phone_number,
        )
        session.add(driver)
        session.commit()
        session.refresh(driver)

        driverData = serialize(DriverSchema, driver)
        logEvent(user, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.put(
    URL_DRIVER + "/{id}",
    tags=["Driver"],
    response_model=DriverSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UniqueViolation("A driver with this email already exists"),
        ]
    ),
    description="""
    Updates the details of a driver.
    Only superadmins and admins can update drivers.
    The vehicle binding is managed through the vehicle endpoints.
    """,
)
async def update_driver(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_DRIVER)
        driver = session.query(Driver).filter(Driver.id == id).first()
        if driver is None:
            raise exceptions.InvalidIdentifier()
        checkUnique(session, driver, fParam.email, fParam.cin_number)

        updateIfChanged(
            driver,
            fParam,
            [
                Driver.username.key,
                Driver.email.key,
                Driver.cin_number.key,
                Driver.phone_number.key,
            ],
        )
        haveUpdates = session.is_modified(driver)
        if haveUpdates:
            session.commit()
            session.refresh(driver)
        driverData = serialize(DriverSchema, driver)
        if haveUpdates:
            logEvent(user, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.delete(
    URL_DRIVER + "/{id}",
    tags=["Driver"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Deletes a driver.
    Only superadmins and admins can delete drivers.
    The driver leaves the driver list of its vehicle.
    """,
)
async def delete_driver(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    driverLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_DRIVER)
        driverLock = acquireLock(Driver.__tablename__)
        driver = session.query(Driver).filter(Driver.id == id).first()
        if driver is None:
            raise exceptions.InvalidIdentifier()

        driverData = serialize(DriverSchema, driver)
        driver.vehicle = None
        session.delete(driver)
        session.commit()
        logEvent(user, request_info, driverData)
        return {"message": "Driver deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(driverLock)
        session.close()


@route_driver.get(
    URL_DRIVER,
    tags=["Driver"],
    response_model=List[DriverSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every driver.
    Use `assigned` to list only the drivers bound (or not bound) to a vehicle.
    """,
)
async def fetch_drivers(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(DriverSchema, x) for x in searchDriver(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.get(
    URL_DRIVER + "/{id}",
    tags=["Driver"],
    response_model=DriverSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_driver(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        driver = session.query(Driver).filter(Driver.id == id).first()
        if driver is None:
            raise exceptions.InvalidIdentifier()
        return serialize(DriverSchema, driver)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
