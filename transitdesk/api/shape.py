from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Shape, sessionMaker
from transitdesk.src import exceptions, validators, getters
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import Permission
from transitdesk.src.functions import fuseExceptionResponses, sortedPoints
from transitdesk.src.schemas import InputSchema, MessageResponse, ORMSchema, serialize
from transitdesk.src.urls import URL_SHAPE

route_shape = APIRouter()


## Output Schema
class ShapePointSchema(BaseModel):
    shape_pt_lat: float = Field(ge=-90, le=90)
    shape_pt_lon: float = Field(ge=-180, le=180)
    shape_pt_sequence: int = Field(ge=0)
    shape_dist_traveled: Optional[float] = Field(default=None, ge=0)


class ShapeSchema(ORMSchema):
    id: int
    shape_id: str
    points: List[ShapePointSchema]
    updated_on: Optional[datetime]
    created_on: datetime


class ShapeSummarySchema(ORMSchema):
    id: int
    shape_id: str


## Input Forms
class CreateForm(InputSchema):
    shape_id: str = Field(min_length=1, max_length=64)
    points: List[ShapePointSchema] = Field(min_length=1)


class UpdateForm(InputSchema):
    shape_id: str | None = Field(default=None, min_length=1, max_length=64)
    points: List[ShapePointSchema] | None = Field(default=None, min_length=1)


## Query Parameters
class QueryParams(BaseModel):
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkShapeId(session: Session, shapeId: str):
    if session.query(Shape).filter(Shape.shape_id == shapeId).first():
        raise exceptions.UniqueViolation("A shape with this shape_id already exists")


def dumpPoints(points: List[ShapePointSchema]) -> List[dict]:
    return sortedPoints([point.model_dump() for point in points])


def searchShape(session: Session, qParam: QueryParams) -> List[Shape]:
    query = session.query(Shape).order_by(Shape.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_shape.post(
    URL_SHAPE,
    tags=["Shape"],
    response_model=ShapeSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UniqueViolation("A shape with this shape_id already exists"),
        ]
    ),
    description="""
    Creates a new shape.
    Only superadmins and admins can create shapes.
    Points are stored ordered by `shape_pt_sequence`.
    """,
)
async def create_shape(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_SHAPE)
        checkShapeId(session, fParam.shape_id)

        shape = Shape(shape_id=fParam.shape_id, points=dumpPoints(fParam.points))
        session.add(shape)
        session.commit()
        session.refresh(shape)

        shapeData = serialize(ShapeSchema, shape)
        logEvent(user, request_info, serialize(ShapeSummarySchema, shape))
        return shapeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_shape.put(
    URL_SHAPE + "/{id}",
    tags=["Shape"],
    response_model=ShapeSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UniqueViolation("A shape with this shape_id already exists"),
        ]
    ),
    description="""
    Updates a shape.
    Only superadmins and admins can update shapes.
    Providing `points` replaces every point of the shape.
    """,
)
async def update_shape(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_SHAPE)
        shape = session.query(Shape).filter(Shape.id == id).first()
        if shape is None:
            raise exceptions.InvalidIdentifier()

        if fParam.shape_id is not None and fParam.shape_id != shape.shape_id:
            checkShapeId(session, fParam.shape_id)
            shape.shape_id = fParam.shape_id
        if fParam.points is not None:
            points = dumpPoints(fParam.points)
            if points != shape.points:
                shape.points = points
        haveUpdates = session.is_modified(shape)
        if haveUpdates:
            session.commit()
            session.refresh(shape)
        shapeData = serialize(ShapeSchema, shape)
        if haveUpdates:
            logEvent(user, request_info, serialize(ShapeSummarySchema, shape))
        return shapeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_shape.delete(
    URL_SHAPE + "/{id}",
    tags=["Shape"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes a shape.
    Only superadmins and admins can delete shapes.
    """,
)
async def delete_shape(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    shapeLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_SHAPE)
        shapeLock = acquireLock(Shape.__tablename__, id)
        shape = session.query(Shape).filter(Shape.id == id).first()
        if shape is None:
            raise exceptions.InvalidIdentifier()

        shapeData = serialize(ShapeSummarySchema, shape)
        session.delete(shape)
        session.commit()
        logEvent(user, request_info, shapeData)
        return {"message": "Shape deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(shapeLock)
        session.close()


@route_shape.get(
    URL_SHAPE,
    tags=["Shape"],
    response_model=List[ShapeSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every shape along with its points.
    """,
)
async def fetch_shapes(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(ShapeSchema, x) for x in searchShape(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_shape.get(
    URL_SHAPE + "/summary",
    tags=["Shape"],
    response_model=List[ShapeSummarySchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the id and `shape_id` of every shape, without the points.
    """,
)
async def fetch_shape_summary(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(ShapeSummarySchema, x) for x in searchShape(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_shape.get(
    URL_SHAPE + "/byShapeId/{shapeId}",
    tags=["Shape"],
    response_model=ShapeSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches one shape by its GTFS `shape_id`.
    """,
)
async def fetch_shape_by_shape_id(
    shapeId: str,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        shape = session.query(Shape).filter(Shape.shape_id == shapeId).first()
        if shape is None:
            raise exceptions.InvalidIdentifier()
        return serialize(ShapeSchema, shape)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_shape.get(
    URL_SHAPE + "/{id}",
    tags=["Shape"],
    response_model=ShapeSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_shape(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        shape = session.query(Shape).filter(Shape.id == id).first()
        if shape is None:
            raise exceptions.InvalidIdentifier()
        return serialize(ShapeSchema, shape)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
