from datetime import datetime
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Vehicle, VehicleAssignment, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import AssignmentStatus, AssignmentType
from transitdesk.src.functions import enumStr, fuseExceptionResponses
from transitdesk.src.schemas import InputSchema, MessageResponse
from transitdesk.src.urls import URL_VEHICLE_ASSIGNMENT

route_vehicle_assignment = APIRouter()


## Output Schema
class AssignedTypeSchema(BaseModel):
    type: Optional[str] = Field(default=None, description=enumStr(AssignmentType))
    id: Optional[Union[int, str]] = Field(default=None)


class VehicleAssignmentSchema(BaseModel):
    id: int
    vehicle_id: int
    assigned_type: AssignedTypeSchema
    assigned_at: datetime
    status: str
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    vehicle_id: int | None = Field(default=None)
    assigned_type: AssignedTypeSchema | None = Field(default=None)
    status: AssignmentStatus = Field(
        default=AssignmentStatus.ACTIVE, description=enumStr(AssignmentStatus)
    )


class UpdateForm(InputSchema):
    vehicle_id: int | None = Field(default=None)
    assigned_type: AssignedTypeSchema | None = Field(default=None)
    status: AssignmentStatus | None = Field(
        default=None, description=enumStr(AssignmentStatus)
    )


## Query Parameters
class QueryParams(BaseModel):
    vehicle_id: int | None = Field(Query(default=None))
    status: AssignmentStatus | None = Field(
        Query(default=None, description=enumStr(AssignmentStatus))
    )
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def assignmentData(assignment: VehicleAssignment) -> dict:
    """Render an assignment with its `{type, id}` target."""
    reference = assignment.assigned_ref
    if assignment.assigned_type != AssignmentType.BLOCK:
        reference = relations.refId(reference)
    return VehicleAssignmentSchema(
        id=assignment.id,
        vehicle_id=assignment.vehicle_id,
        assigned_type=AssignedTypeSchema(type=assignment.assigned_type, id=reference),
        assigned_at=assignment.assigned_at,
        status=assignment.status,
        updated_on=assignment.updated_on,
        created_on=assignment.created_on,
    ).model_dump(mode="json")


def checkTarget(assignedType: AssignedTypeSchema | None) -> AssignedTypeSchema:
    if assignedType is None:
        raise exceptions.MissingParameter(VehicleAssignment.assigned_type)
    if assignedType.type is None:
        raise exceptions.MissingParameter("assigned_type.type")
    if assignedType.id is None:
        raise exceptions.MissingParameter("assigned_type.id")
    return assignedType


def getVehicle(session: Session, vehicleId: int) -> Vehicle:
    vehicle = session.query(Vehicle).filter(Vehicle.id == vehicleId).first()
    if vehicle is None:
        raise exceptions.UnknownValue(VehicleAssignment.vehicle_id)
    return vehicle


def applyAssignment(session: Session, assignment: VehicleAssignment) -> None:
    """
    Mirror an assignment on its vehicle. The target is checked in both
    states, inactive assignments leave the vehicle free.
    """
    vehicle = assignment.vehicle
    if assignment.status == AssignmentStatus.ACTIVE:
        relations.assignVehicle(
            session, vehicle, assignment.assigned_type, assignment.assigned_ref
        )
    else:
        relations.checkAssignment(
            session, assignment.assigned_type, assignment.assigned_ref
        )
        relations.clearVehicleAssignment(vehicle)


def searchAssignment(session: Session, qParam: QueryParams) -> List[VehicleAssignment]:
    query = session.query(VehicleAssignment)
    # Filters
    if qParam.vehicle_id is not None:
        query = query.filter(VehicleAssignment.vehicle_id == qParam.vehicle_id)
    if qParam.status is not None:
        query = query.filter(VehicleAssignment.status == qParam.status.value)
    # Pagination
    query = query.order_by(VehicleAssignment.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_vehicle_assignment.post(
    URL_VEHICLE_ASSIGNMENT,
    tags=["Vehicle Assignment"],
    response_model=VehicleAssignmentSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.MissingParameter(VehicleAssignment.vehicle_id),
            exceptions.InvalidAssignmentType(),
            exceptions.UnknownValue(VehicleAssignment.vehicle_id),
            exceptions.UnknownValue("trip"),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assigns a vehicle to a trip, a route or a block.
    `assigned_type.type` is one of `trip`, `route` or `block`, `assigned_type.id` the trip or route ID or the block identifier.
    The vehicle points to the new target only, its previous trip, route or block is cleared.
    """,
)
async def create_vehicle_assignment(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    vehicleLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        if fParam.vehicle_id is None:
            raise exceptions.MissingParameter(VehicleAssignment.vehicle_id)
        target = checkTarget(fParam.assigned_type)
        vehicleLock = acquireLock(Vehicle.__tablename__, fParam.vehicle_id)
        vehicle = getVehicle(session, fParam.vehicle_id)

        assignment = VehicleAssignment(
            vehicle=vehicle,
            assigned_type=target.type,
            assigned_ref=str(target.id),
            status=fParam.status.value,
        )
        applyAssignment(session, assignment)
        session.add(assignment)
        session.commit()
        session.refresh(assignment)

        data = assignmentData(assignment)
        logEvent(user, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(vehicleLock)
        session.close()


@route_vehicle_assignment.put(
    URL_VEHICLE_ASSIGNMENT + "/{id}",
    tags=["Vehicle Assignment"],
    response_model=VehicleAssignmentSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidAssignmentType(),
            exceptions.UnknownValue(VehicleAssignment.vehicle_id),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Updates a vehicle assignment.
    The vehicle is pointed to the resulting target. Moving the assignment to another vehicle frees the previous one.
    An `inactive` assignment leaves its vehicle without trip, route or block.
    """,
)
async def update_vehicle_assignment(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    assignmentLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        assignmentLock = acquireLock(VehicleAssignment.__tablename__, id)
        assignment = (
            session.query(VehicleAssignment).filter(VehicleAssignment.id == id).first()
        )
        if assignment is None:
            raise exceptions.InvalidIdentifier()

        if fParam.vehicle_id is not None and fParam.vehicle_id != assignment.vehicle_id:
            vehicle = getVehicle(session, fParam.vehicle_id)
            relations.clearVehicleAssignment(assignment.vehicle)
            assignment.vehicle = vehicle
        if fParam.assigned_type is not None:
            target = checkTarget(fParam.assigned_type)
            assignment.assigned_type = target.type
            assignment.assigned_ref = str(target.id)
        if fParam.status is not None:
            assignment.status = fParam.status.value
        haveUpdates = session.is_modified(assignment)
        if haveUpdates:
            applyAssignment(session, assignment)
            session.commit()
            session.refresh(assignment)
        data = assignmentData(assignment)
        if haveUpdates:
            logEvent(user, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(assignmentLock)
        session.close()


@route_vehicle_assignment.delete(
    URL_VEHICLE_ASSIGNMENT + "/{id}",
    tags=["Vehicle Assignment"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Deletes a vehicle assignment and leaves its vehicle without trip, route or block.
    """,
)
async def delete_vehicle_assignment(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    assignmentLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        assignmentLock = acquireLock(VehicleAssignment.__tablename__, id)
        assignment = (
            session.query(VehicleAssignment).filter(VehicleAssignment.id == id).first()
        )
        if assignment is None:
            raise exceptions.InvalidIdentifier()

        data = assignmentData(assignment)
        relations.clearVehicleAssignment(assignment.vehicle)
        session.delete(assignment)
        session.commit()
        logEvent(user, request_info, data)
        return {"message": "Vehicle assignment deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(assignmentLock)
        session.close()


@route_vehicle_assignment.get(
    URL_VEHICLE_ASSIGNMENT,
    tags=["Vehicle Assignment"],
    response_model=List[VehicleAssignmentSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every vehicle assignment.
    Supports filtering by vehicle and status.
    """,
)
async def fetch_vehicle_assignments(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [assignmentData(x) for x in searchAssignment(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vehicle_assignment.get(
    URL_VEHICLE_ASSIGNMENT + "/{id}",
    tags=["Vehicle Assignment"],
    response_model=VehicleAssignmentSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_vehicle_assignment(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        assignment = (
            session.query(VehicleAssignment).filter(VehicleAssignment.id == id).first()
        )
        if assignment is None:
            raise exceptions.InvalidIdentifier()
        return assignmentData(assignment)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
