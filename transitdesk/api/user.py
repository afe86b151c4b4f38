from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, EmailStr, Field
from pydantic_extra_types.phone_numbers import PhoneNumber

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Agency, User, sessionMaker
from transitdesk.src import argon2, exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.enums import Permission, UserRole
from transitdesk.src.constants import REGEX_PASSWORD
from transitdesk.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdList,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_USER

route_user = APIRouter()


## Output Schema
class UserSchema(ORMSchema):
    id: int
    username: str
    email: str
    cin_number: Optional[str] = Field(alias="cinNumber")
    phone_number: Optional[str] = Field(alias="phoneNumber")
    role: str
    myadmin: Optional[str]
    agencies: IdList
    students: IdList
    updated_on: Optional[datetime]
    created_on: datetime


class UserResultSchema(UserSchema):
    password: None = None
    message: str


## Input Forms
class CreateForm(InputSchema):
    username: str = Field(min_length=1, max_length=64)
    email: EmailStr
    cin_number: str | None = Field(alias="cinNumber", default=None, max_length=32)
    phone_number: PhoneNumber | None = Field(alias="phoneNumber", default=None)
    password: str = Field(pattern=REGEX_PASSWORD, min_length=8, max_length=32)
    role: UserRole = Field(description=enumStr(UserRole), default=UserRole.PARENT)
    myadmin: EmailStr | None = Field(default=None)
    agencies: List[int] | None = Field(default=None)


class UpdateForm(InputSchema):
    username: str | None = Field(default=None, min_length=1, max_length=64)
    email: EmailStr | None = Field(default=None)
    cin_number: str | None = Field(alias="cinNumber", default=None, max_length=32)
    phone_number: PhoneNumber | None = Field(alias="phoneNumber", default=None)
    password: str | None = Field(
        default=None, pattern=REGEX_PASSWORD, min_length=8, max_length=32
    )
    role: UserRole | None = Field(description=enumStr(UserRole), default=None)
    myadmin: EmailStr | None = Field(default=None)


## Query Parameters
class QueryParams(BaseModel):
    role: UserRole | None = Field(Query(default=None, description=enumStr(UserRole)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkUnique(session: Session, user: User | None, email=None, cinNumber=None):
    for column, value, name in (
        (User.email, email, "email"),
        (User.cin_number, cinNumber, "cinNumber"),
    ):
        if value is None:
            continue
        query = session.query(User).filter(column == value)
        if user is not None:
            query = query.filter(User.id != user.id)
        if query.first() is not None:
            raise exceptions.UniqueViolation(f"A user with this {name} already exists")


def resolveAgencies(session: Session, agencyIds: List[int]) -> List[Agency]:
    agencies = session.query(Agency).filter(Agency.id.in_(agencyIds)).all()
    if len(agencies) != len(set(agencyIds)):
        raise exceptions.UnknownValue(Agency.__tablename__)
    return agencies


def searchUser(session: Session, user: User, qParam: QueryParams) -> List[User]:
    query = validators.userScope(user, session.query(User))
    # Filters
    if qParam.role is not None:
        query = query.filter(User.role == qParam.role.value)
    # Pagination
    query = query.order_by(User.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_user.post(
    URL_USER,
    tags=["User"],
    response_model=UserResultSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UniqueViolation("A user with this email already exists"),
            exceptions.UnknownValue(Agency.__tablename__),
        ]
    ),
    description="""
    Creates a new user account.
    Only superadmins and admins can create accounts, admins can only create `parent` accounts.
    Accounts created by an admin are attached to that admin (`myadmin`) and inherit its agencies.
    Students already registered with the new account CIN number are linked to it.
    The password is stored as an Argon2 hash and never returned.
    """,
)
async def create_user(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.CREATE_USER)
        if fParam.role != UserRole.PARENT:
            validators.userPermission(caller, Permission.CREATE_ADMIN)
        checkUnique(session, None, fParam.email, fParam.cin_number)

        user = User(
            username=fParam.username,
            email=fParam.email,
            cin_number=fParam.cin_number,
            phone_number=fParam.phone_number,
            password=argon2.makePassword(fParam.password),
            role=fParam.role.value,
        )
        if caller.role == UserRole.ADMIN:
            user.myadmin = caller.email
            user.agencies = list(caller.agencies)
        else:
            user.myadmin = fParam.myadmin or caller.email
            if fParam.agencies:
                user.agencies = resolveAgencies(session, fParam.agencies)
        session.add(user)
        session.flush()
        relations.adoptStudents(session, user)
        session.commit()
        session.refresh(user)

        userData = serialize(UserSchema, user)
        logEvent(caller, request_info, userData)
        return {**userData, "password": None, "message": "User created successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.put(
    URL_USER + "/{id}",
    tags=["User"],
    response_model=UserResultSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.ProtectedAccount(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Updates an existing user account.
    Superadmins can update any account, admins only their own account and the accounts they created.
    Admins cannot promote an account to a role other than `parent`.
    The protected superadmin account can only be updated by itself and keeps its email and role.
    A new password is re-hashed. A CIN number change is propagated to the students of the account.
    """,
)
async def update_user(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.UPDATE_USER)
        user = session.query(User).filter(User.id == id).first()
        if user is None:
            raise exceptions.InvalidIdentifier()
        validators.protectedAccountUpdate(caller, user, fParam.email, fParam.role)
        visible = validators.userScope(caller, session.query(User)).filter(
            User.id == id
        )
        if visible.first() is None:
            raise exceptions.NoPermission()
        if (
            fParam.role is not None
            and fParam.role != user.role
            and fParam.role != UserRole.PARENT
        ):
            validators.userPermission(caller, Permission.CREATE_ADMIN)
        if fParam.myadmin is not None:
            validators.userPermission(caller, Permission.CREATE_ADMIN)
        checkUnique(session, user, fParam.email, fParam.cin_number)

        if fParam.cin_number is not None and fParam.cin_number != user.cin_number:
            relations.rekeyStudents(user, fParam.cin_number)
        updateIfChanged(
            user,
            fParam,
            [
                User.username.key,
                User.email.key,
                User.cin_number.key,
                User.phone_number.key,
                User.myadmin.key,
            ],
        )
        if fParam.role is not None:
            user.role = fParam.role.value
        if fParam.password is not None:
            user.password = argon2.makePassword(fParam.password)
        haveUpdates = session.is_modified(user) or any(
            session.is_modified(student) for student in user.students
        )
        if haveUpdates:
            session.commit()
            session.refresh(user)
        userData = serialize(UserSchema, user)
        if haveUpdates:
            logEvent(caller, request_info, userData)
        return {**userData, "password": None, "message": "User updated successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.delete(
    URL_USER + "/{id}",
    tags=["User"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.ProtectedAccount(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes a user account.
    The protected superadmin account can never be deleted.
    Admins cannot delete their own account and can only delete the accounts they created.
    The students of the deleted account are detached from it.
    """,
)
async def delete_user(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.DELETE_USER)
        user = session.query(User).filter(User.id == id).first()
        if user is None:
            raise exceptions.InvalidIdentifier()
        validators.protectedAccountDelete(user)
        if caller.role == UserRole.ADMIN:
            if user.id == caller.id:
                raise exceptions.NoPermission()
            if user.myadmin != caller.email:
                raise exceptions.InvalidIdentifier()

        userData = serialize(UserSchema, user)
        relations.releaseStudents(user)
        session.delete(user)
        session.commit()
        logEvent(caller, request_info, userData)
        return {"message": "User deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_USER,
    tags=["User"],
    response_model=List[UserSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Fetches the user accounts visible to the caller.
    Superadmins see every account, admins see their own account and the accounts they created.
    Supports filtering by role.
    """,
)
async def fetch_users(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        validators.userPermission(caller, Permission.LIST_USER)
        return [serialize(UserSchema, user) for user in searchUser(session, caller, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_user.get(
    URL_USER + "/{id}",
    tags=["User"],
    response_model=UserSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches one user account.
    Superadmins can read any account, admins their own account and the accounts they created, parents only their own account.
    """,
)
async def fetch_user(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        caller = validators.userToken(bearer, session)
        user = (
            validators.userScope(caller, session.query(User))
            .filter(User.id == id)
            .first()
        )
        if user is None:
            raise exceptions.InvalidIdentifier()
        return serialize(UserSchema, user)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
