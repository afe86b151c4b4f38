from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Agency, Route, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import Permission
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdList,
    IdRef,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_ROUTE

route_route = APIRouter()


## Output Schema
class RouteSchema(ORMSchema):
    id: int
    agency: IdRef
    route_id: str
    route_short_name: str
    route_long_name: Optional[str]
    route_type: Optional[str]
    trips: IdList
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    agency: int
    route_id: str = Field(min_length=1, max_length=64)
    route_short_name: str = Field(min_length=1, max_length=64)
    route_long_name: str | None = Field(default=None, max_length=256)
    route_type: str | None = Field(default=None, max_length=16)


class UpdateForm(InputSchema):
    agency: int | None = Field(default=None)
    route_id: str | None = Field(default=None, min_length=1, max_length=64)
    route_short_name: str | None = Field(default=None, min_length=1, max_length=64)
    route_long_name: str | None = Field(default=None, max_length=256)
    route_type: str | None = Field(default=None, max_length=16)


## Query Parameters
class QueryParams(BaseModel):
    agency: int | None = Field(Query(default=None))
    route_short_name: str | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def getAgency(session: Session, agencyId: int) -> Agency:
    agency = session.query(Agency).filter(Agency.id == agencyId).first()
    if agency is None:
        raise exceptions.UnknownValue(Route.agency)
    return agency


def checkRouteId(session: Session, routeId: str):
    if session.query(Route).filter(Route.route_id == routeId).first():
        raise exceptions.UniqueViolation("A route with this route_id already exists")


def searchRoute(session: Session, qParam: QueryParams) -> List[Route]:
    query = session.query(Route)
    # Filters
    if qParam.agency is not None:
        query = query.filter(Route.agency_id == qParam.agency)
    if qParam.route_short_name is not None:
        query = query.filter(
            Route.route_short_name.ilike(f"%{qParam.route_short_name}%")
        )
    # Pagination
    query = query.order_by(Route.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_route.post(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue(Route.agency),
            exceptions.UniqueViolation("A route with this route_id already exists"),
        ]
    ),
    description="""
    Creates a new route under an existing agency.
    Only superadmins and admins can create routes.
    The route is added to the route list of its agency.
    """,
)
async def create_route(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_ROUTE)
        agency = getAgency(session, fParam.agency)
        checkRouteId(session, fParam.route_id)

        route = Route(
            route_id=fParam.route_id,
            route_short_name=fParam.route_short_name,
            route_long_name=fParam.route_long_name,
            route_type=fParam.route_type,
        )
        relations.attachRoute(route, agency)
        session.add(route)
        session.commit()
        session.refresh(route)

        routeData = serialize(RouteSchema, route)
        logEvent(user, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_route.put(
    URL_ROUTE + "/{id}",
    tags=["Route"],
    response_model=RouteSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Route.agency),
        ]
    ),
    description="""
    Updates an existing route.
    Only superadmins and admins can update routes.
    Changing the agency moves the route from the route list of the old agency to the new one.
    """,
)
async def update_route(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_ROUTE)
        route = session.query(Route).filter(Route.id == id).first()
        if route is None:
            raise exceptions.InvalidIdentifier()
        if fParam.route_id is not None and fParam.route_id != route.route_id:
            checkRouteId(session, fParam.route_id)

        if fParam.agency is not None and fParam.agency != route.agency_id:
            relations.attachRoute(route, getAgency(session, fParam.agency))
        updateIfChanged(
            route,
            fParam,
            [
                Route.route_id.key,
                Route.route_short_name.key,
                Route.route_long_name.key,
                Route.route_type.key,
            ],
        )
        haveUpdates = session.is_modified(route)
        if haveUpdates:
            session.commit()
            session.refresh(route)
        routeData = serialize(RouteSchema, route)
        if haveUpdates:
            logEvent(user, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_route.delete(
    URL_ROUTE + "/{id}",
    tags=["Route"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes a route along with the vehicle assignments targeting it.
    Only superadmins and admins can delete routes.
    The route leaves the route list of its agency, its trips are left without route
    and the vehicles assigned to it are unassigned.
    """,
)
async def delete_route(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    routeLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_ROUTE)
        routeLock = acquireLock(Route.__tablename__, id)
        route = session.query(Route).filter(Route.id == id).first()
        if route is None:
            raise exceptions.InvalidIdentifier()

        routeData = serialize(RouteSchema, route)
        relations.releaseRoute(session, route)
        session.delete(route)
        session.commit()
        logEvent(user, request_info, routeData)
        return {"message": "Route deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(routeLock)
        session.close()


@route_route.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every route.
    Supports filtering by agency and short name.
    """,
)
async def fetch_routes(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(RouteSchema, x) for x in searchRoute(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_route.get(
    URL_ROUTE + "/{id}",
    tags=["Route"],
    response_model=RouteSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches one route by its ID.
    """,
)
async def fetch_route(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        route = session.query(Route).filter(Route.id == id).first()
        if route is None:
            raise exceptions.InvalidIdentifier()
        return serialize(RouteSchema, route)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
