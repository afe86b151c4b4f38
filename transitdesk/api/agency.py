from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, EmailStr, Field
from pydantic_extra_types.phone_numbers import PhoneNumber

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Agency, Route, User, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.enums import Permission
from transitdesk.src.permissions import hasPermission
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdList,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_AGENCY

route_agency = APIRouter()


## Output Schema
class AgencySchema(ORMSchema):
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    website: Optional[str]
    routes: IdList
    updated_on: Optional[datetime]
    created_on: datetime


class AgencyResultSchema(AgencySchema):
    message: str


## Input Forms
class CreateForm(InputSchema):
    name: str = Field(min_length=1, max_length=128)
    email: EmailStr | None = Field(default=None)
    phone: PhoneNumber | None = Field(default=None)
    website: str | None = Field(default=None, max_length=256)
    routes: List[int] | None = Field(default=None)


class UpdateForm(InputSchema):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    email: EmailStr | None = Field(default=None)
    phone: PhoneNumber | None = Field(default=None)
    website: str | None = Field(default=None, max_length=256)
    routes: List[int] | None = Field(default=None)


## Query Parameters
class QueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def setRoutes(session: Session, user: User, agency: Agency, routeIds: List[int]):
    routes = session.query(Route).filter(Route.id.in_(routeIds)).all()
    if len(routes) != len(set(routeIds)):
        raise exceptions.UnknownValue(Route.__tablename__)
    # Taking a route away from another agency is a route reassignment
    if not hasPermission(user.role, Permission.ASSIGN_ROUTE_AGENCY):
        for route in routes:
            if route.agency_id is not None and route.agency_id != agency.id:
                raise exceptions.NoPermission()
    for route in list(agency.routes):
        if route.id not in routeIds:
            relations.attachRoute(route, None)
    for route in routes:
        relations.attachRoute(route, agency)


def searchAgency(session: Session, qParam: QueryParams) -> List[Agency]:
    query = session.query(Agency)
    # Filters
    if qParam.name is not None:
        query = query.filter(Agency.name.ilike(f"%{qParam.name}%"))
    # Pagination
    query = query.order_by(Agency.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_agency.post(
    URL_AGENCY,
    tags=["Agency"],
    response_model=AgencyResultSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UniqueViolation("An agency with this name already exists"),
        ]
    ),
    description="""
    Creates a new agency.
    Only superadmins can create agencies.
    The new agency is granted to every superadmin account.
    """,
)
async def create_agency(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.CREATE_AGENCY)
        if session.query(Agency).filter(Agency.name == fParam.name).first():
            raise exceptions.UniqueViolation("An agency with this name already exists")

        agency = Agency(
            name=fParam.name,
            email=fParam.email,
            phone=fParam.phone,
            website=fParam.website,
        )
        session.add(agency)
        if fParam.routes:
            setRoutes(session, user, agency, fParam.routes)
        relations.grantToSuperadmins(session, agency)
        session.commit()
        session.refresh(agency)

        agencyData = serialize(AgencySchema, agency)
        logEvent(user, request_info, agencyData)
        return {**agencyData, "message": "Agency created successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_agency.put(
    URL_AGENCY + "/{id}",
    tags=["Agency"],
    response_model=AgencyResultSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Updates an existing agency.
    Superadmins can update any field of any agency.
    Admins can only update the `email`, `phone`, `website` and `routes` of the agencies granted to them.
    Providing `routes` replaces the list of routes of the agency. Only superadmins can take a route from another agency.
    """,
)
async def update_agency(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.UPDATE_AGENCY)
        validators.agencyUpdateFields(user, fParam.model_fields_set)
        agency = session.query(Agency).filter(Agency.id == id).first()
        if agency is None:
            raise exceptions.InvalidIdentifier()
        visible = validators.agencyScope(user, session.query(Agency))
        if visible.filter(Agency.id == id).first() is None:
            raise exceptions.NoPermission()
        if fParam.name is not None and fParam.name != agency.name:
            if session.query(Agency).filter(Agency.name == fParam.name).first():
                raise exceptions.UniqueViolation(
                    "An agency with this name already exists"
                )

        updateIfChanged(
            agency,
            fParam,
            [
                Agency.name.key,
                Agency.email.key,
                Agency.phone.key,
                Agency.website.key,
            ],
        )
        haveUpdates = session.is_modified(agency)
        if fParam.routes is not None:
            setRoutes(session, user, agency, fParam.routes)
            haveUpdates = True
        if haveUpdates:
            session.commit()
            session.refresh(agency)
        agencyData = serialize(AgencySchema, agency)
        if haveUpdates:
            logEvent(user, request_info, agencyData)
        return {**agencyData, "message": "Agency updated successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_agency.delete(
    URL_AGENCY + "/{id}",
    tags=["Agency"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes an agency.
    Only superadmins can delete agencies.
    The agency is revoked from every user and its routes are left without agency.
    """,
)
async def delete_agency(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.DELETE_AGENCY)
        agency = session.query(Agency).filter(Agency.id == id).first()
        if agency is None:
            raise exceptions.InvalidIdentifier()

        agencyData = serialize(AgencySchema, agency)
        relations.releaseAgency(agency)
        session.delete(agency)
        session.commit()
        logEvent(user, request_info, agencyData)
        return {"message": "Agency deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_agency.get(
    URL_AGENCY,
    tags=["Agency"],
    response_model=List[AgencySchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches every agency.
    Only superadmins can list agencies.
    """,
)
async def fetch_agencies(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.LIST_AGENCY)
        return [serialize(AgencySchema, x) for x in searchAgency(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_agency.get(
    URL_AGENCY + "/{id}",
    tags=["Agency"],
    response_model=AgencySchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches one agency.
    Superadmins can read any agency, other users only the agencies granted to them.
    """,
)
async def fetch_agency(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        agency = (
            validators.agencyScope(user, session.query(Agency))
            .filter(Agency.id == id)
            .first()
        )
        if agency is None:
            raise exceptions.InvalidIdentifier()
        return serialize(AgencySchema, agency)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
