from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.src.db import Driver, Vehicle, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.constants import MAX_DRIVERS_PER_VEHICLE, MIN_DRIVERS_PER_VEHICLE
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdList,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_VEHICLE

route_vehicle = APIRouter()


## Output Schema
class EstimatedArrivalSchema(InputSchema):
    stopId: int
    arrivalTime: datetime


class VehicleDetailsSchema(InputSchema):
    next_stop_id: Optional[int] = None
    next_stop_name: Optional[str] = None
    next_stop_distance: Optional[float] = Field(default=None, ge=0)


class VehicleSchema(ORMSchema):
    id: int
    unique_id: str = Field(alias="uniqueId")
    name: str
    category: Optional[str]
    latitude: float
    longitude: float
    temperature: Optional[float]
    pressure: Optional[float]
    humidity: Optional[float]
    flame: Optional[bool]
    position_id: Optional[str] = Field(alias="positionId")
    drivers: IdList
    assigned_route_id: Optional[int] = Field(alias="assignedRoute")
    assigned_trip_id: Optional[int] = Field(alias="assignedTrip")
    assigned_block: Optional[str] = Field(alias="assignedBlock")
    headsign: Optional[str]
    estimated_arrival_times: List[EstimatedArrivalSchema] = Field(
        alias="estimatedArrivalTimes"
    )
    current_shape_sequence: Optional[int] = Field(alias="currentShapeSequence")
    vehicle_details: VehicleDetailsSchema
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    unique_id: str = Field(alias="uniqueId", min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=64)
    drivers: List[str] = Field(
        description=f"CIN numbers of the {MIN_DRIVERS_PER_VEHICLE} to {MAX_DRIVERS_PER_VEHICLE} drivers"
    )
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    category: str | None = Field(default=None, max_length=32)
    headsign: str | None = Field(default=None, max_length=128)


class UpdateForm(InputSchema):
    unique_id: str | None = Field(
        alias="uniqueId", default=None, min_length=1, max_length=64
    )
    name: str | None = Field(default=None, min_length=1, max_length=64)
    drivers: List[str] | None = Field(default=None)
    category: str | None = Field(default=None, max_length=32)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    temperature: float | None = Field(default=None)
    pressure: float | None = Field(default=None)
    humidity: float | None = Field(default=None, ge=0, le=100)
    flame: bool | None = Field(default=None)
    position_id: str | None = Field(alias="positionId", default=None, max_length=64)
    headsign: str | None = Field(default=None, max_length=128)
    estimated_arrival_times: List[EstimatedArrivalSchema] | None = Field(
        alias="estimatedArrivalTimes", default=None
    )
    current_shape_sequence: int | None = Field(
        alias="currentShapeSequence", default=None, ge=0
    )
    vehicle_details: VehicleDetailsSchema | None = Field(default=None)


## Query Parameters
class QueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    category: str | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkUniqueId(session: Session, uniqueId: str):
    if session.query(Vehicle).filter(Vehicle.unique_id == uniqueId).first():
        raise exceptions.UniqueViolation("A vehicle with this uniqueId already exists")


def currentDrivers(vehicle: Vehicle) -> List[str]:
    return [driver.cin_number for driver in vehicle.drivers]


def searchVehicle(session: Session, qParam: QueryParams) -> List[Vehicle]:
    query = session.query(Vehicle)
    # Filters
    if qParam.name is not None:
        query = query.filter(Vehicle.name.ilike(f"%{qParam.name}%"))
    if qParam.category is not None:
        query = query.filter(Vehicle.category == qParam.category)
    # Pagination
    query = query.order_by(Vehicle.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_vehicle.post(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidDriverCount(
                MIN_DRIVERS_PER_VEHICLE, MAX_DRIVERS_PER_VEHICLE
            ),
            exceptions.InvalidValue("drivers"),
            exceptions.DriverAlreadyAssigned("<cinNumber>"),
            exceptions.UniqueViolation("A vehicle with this uniqueId already exists"),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Registers a new vehicle driven by one or two drivers given by CIN number.
    A driver already bound to another vehicle cannot be assigned, in which case nothing is created.
    This endpoint does not require authentication.
    """,
)
async def create_vehicle(
    fParam: CreateForm,
    request_info=Depends(getters.requestInfo),
):
    driverLock = None
    try:
        session = sessionMaker()
        validators.driverCount(fParam.drivers)
        checkUniqueId(session, fParam.unique_id)

        driverLock = acquireLock(Driver.__tablename__)
        vehicle = Vehicle(
            unique_id=fParam.unique_id,
            name=fParam.name,
            latitude=fParam.latitude,
            longitude=fParam.longitude,
            category=fParam.category,
            headsign=fParam.headsign,
        )
        relations.bindDrivers(session, vehicle, fParam.drivers)
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)

        vehicleData = serialize(VehicleSchema, vehicle)
        logEvent(None, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(driverLock)
        session.close()


@route_vehicle.put(
    URL_VEHICLE + "/{id}",
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidIdentifier(),
            exceptions.InvalidDriverCount(
                MIN_DRIVERS_PER_VEHICLE, MAX_DRIVERS_PER_VEHICLE
            ),
            exceptions.DriverAlreadyAssigned("<cinNumber>"),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Updates a vehicle and its latest telemetry.
    Providing `drivers` replaces the drivers of the vehicle: removed drivers become free,
    added drivers must not be bound to another vehicle.
    The assignment of the vehicle is managed through the vehicle assignment endpoints.
    This endpoint does not require authentication.
    """,
)
async def update_vehicle(
    id: int,
    fParam: UpdateForm,
    request_info=Depends(getters.requestInfo),
):
    driverLock = None
    try:
        session = sessionMaker()
        vehicle = session.query(Vehicle).filter(Vehicle.id == id).first()
        if vehicle is None:
            raise exceptions.InvalidIdentifier()
        if fParam.unique_id is not None and fParam.unique_id != vehicle.unique_id:
            checkUniqueId(session, fParam.unique_id)

        haveUpdates = False
        if fParam.drivers is not None and fParam.drivers != currentDrivers(vehicle):
            validators.driverCount(fParam.drivers)
            driverLock = acquireLock(Driver.__tablename__)
            relations.bindDrivers(session, vehicle, fParam.drivers)
            haveUpdates = True
        updateIfChanged(
            vehicle,
            fParam,
            [
                Vehicle.unique_id.key,
                Vehicle.name.key,
                Vehicle.category.key,
                Vehicle.latitude.key,
                Vehicle.longitude.key,
                Vehicle.temperature.key,
                Vehicle.pressure.key,
                Vehicle.humidity.key,
                Vehicle.flame.key,
                Vehicle.position_id.key,
                Vehicle.headsign.key,
                Vehicle.current_shape_sequence.key,
            ],
        )
        if fParam.estimated_arrival_times is not None:
            vehicle.estimated_arrival_times = [
                x.model_dump(mode="json") for x in fParam.estimated_arrival_times
            ]
        if fParam.vehicle_details is not None:
            vehicle.vehicle_details = fParam.vehicle_details.model_dump(mode="json")
        haveUpdates = haveUpdates or session.is_modified(vehicle)
        if haveUpdates:
            session.commit()
            session.refresh(vehicle)
        vehicleData = serialize(VehicleSchema, vehicle)
        if haveUpdates:
            logEvent(None, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(driverLock)
        session.close()


@route_vehicle.delete(
    URL_VEHICLE + "/{id}",
    tags=["Vehicle"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [exceptions.InvalidIdentifier(), exceptions.LockAcquireTimeout()]
    ),
    description="""
    Deletes a vehicle along with its assignments.
    The drivers of the vehicle become free.
    This endpoint does not require authentication.
    """,
)
async def delete_vehicle(
    id: int,
    request_info=Depends(getters.requestInfo),
):
    driverLock = None
    try:
        session = sessionMaker()
        driverLock = acquireLock(Driver.__tablename__)
        vehicle = session.query(Vehicle).filter(Vehicle.id == id).first()
        if vehicle is None:
            raise exceptions.InvalidIdentifier()

        vehicleData = serialize(VehicleSchema, vehicle)
        relations.releaseDrivers(vehicle)
        for trip in list(vehicle.trips):
            trip.vehicle = None
        session.delete(vehicle)
        session.commit()
        logEvent(None, request_info, vehicleData)
        return {"message": "Vehicle deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(driverLock)
        session.close()


@route_vehicle.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=List[VehicleSchema],
    description="""
    Fetches every vehicle.
    Supports filtering by name and category.
    """,
)
async def fetch_vehicles(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return [serialize(VehicleSchema, x) for x in searchVehicle(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vehicle.get(
    URL_VEHICLE + "/{id}",
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier()]),
)
async def fetch_vehicle(id: int):
    try:
        session = sessionMaker()
        vehicle = session.query(Vehicle).filter(Vehicle.id == id).first()
        if vehicle is None:
            raise exceptions.InvalidIdentifier()
        return serialize(VehicleSchema, vehicle)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
