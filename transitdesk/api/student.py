from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field
from pydantic_extra_types.phone_numbers import PhoneNumber

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Student, sessionMaker
from transitdesk.src import exceptions, validators, getters, relations
from transitdesk.src.loggers import logEvent
from transitdesk.src.redis import acquireLock, releaseLock
from transitdesk.src.enums import Permission
from transitdesk.src.functions import fuseExceptionResponses, updateIfChanged
from transitdesk.src.schemas import (
    IdRef,
    InputSchema,
    MessageResponse,
    ORMSchema,
    serialize,
)
from transitdesk.src.urls import URL_STUDENT

route_student = APIRouter()


## Output Schema
class StudentSchema(ORMSchema):
    id: int
    username: str
    badge_id: str = Field(alias="badgeId")
    cin_parent: str = Field(alias="cinParent")
    phone_parent: str = Field(alias="phoneParent")
    level: str
    parent: IdRef
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(InputSchema):
    username: str = Field(min_length=1, max_length=64)
    badge_id: str = Field(alias="badgeId", min_length=1, max_length=64)
    cin_parent: str = Field(alias="cinParent", min_length=1, max_length=32)
    phone_parent: PhoneNumber = Field(alias="phoneParent")
    level: str = Field(min_length=1, max_length=32)


class UpdateForm(InputSchema):
    username: str | None = Field(default=None, min_length=1, max_length=64)
    badge_id: str | None = Field(
        alias="badgeId", default=None, min_length=1, max_length=64
    )
    cin_parent: str | None = Field(
        alias="cinParent", default=None, min_length=1, max_length=32
    )
    phone_parent: PhoneNumber | None = Field(alias="phoneParent", default=None)
    level: str | None = Field(default=None, min_length=1, max_length=32)


## Query Parameters
class QueryParams(BaseModel):
    level: str | None = Field(Query(default=None))
    parent: int | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def checkUnique(session: Session, student: Student | None, badgeId=None, cinParent=None):
    for column, value, name in (
        (Student.badge_id, badgeId, "badgeId"),
        (Student.cin_parent, cinParent, "cinParent"),
    ):
        if value is None:
            continue
        query = session.query(Student).filter(column == value)
        if student is not None:
            query = query.filter(Student.id != student.id)
        if query.first() is not None:
            raise exceptions.UniqueViolation(
                f"A student with this {name} already exists"
            )


def searchStudent(session: Session, qParam: QueryParams) -> List[Student]:
    query = session.query(Student)
    # Filters
    if qParam.level is not None:
        query = query.filter(Student.level == qParam.level)
    if qParam.parent is not None:
        query = query.filter(Student.parent_id == qParam.parent)
    # Pagination
    query = query.order_by(Student.id.asc()).offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_student.post(
    URL_STUDENT,
    tags=["Student"],
    response_model=StudentSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue("cinParent"),
            exceptions.UniqueViolation("A student with this badgeId already exists"),
        ]
    ),
    description="""
    Registers a new student.
    Only superadmins and admins can register students.
    The parent account is resolved from `cinParent`, which must match the CIN number of an existing user.
    The student is added to the student list of that parent.
    """,
)
async def create_student(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_STUDENT)
        parent = relations.resolveParent(session, fParam.cin_parent)
        checkUnique(session, None, fParam.badge_id, fParam.cin_parent)

        student = Student(
            username=fParam.username,
            badge_id=fParam.badge_id,
            cin_parent=fParam.cin_parent,
            phone_parent=fParam.phone_parent,
            level=fParam.level,
            parent=parent,
        )
        session.add(student)
        session.commit()
        session.refresh(student)

        studentData = serialize(StudentSchema, student)
        logEvent(user, request_info, studentData)
        return studentData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_student.put(
    URL_STUDENT + "/{id}",
    tags=["Student"],
    response_model=StudentSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue("cinParent"),
        ]
    ),
    description="""
    Updates a student.
    Only superadmins and admins can update students.
    Changing `cinParent` moves the student from the old parent to the account carrying the new CIN number.
    """,
)
async def update_student(
    id: int,
    fParam: UpdateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_STUDENT)
        student = session.query(Student).filter(Student.id == id).first()
        if student is None:
            raise exceptions.InvalidIdentifier()
        checkUnique(session, student, fParam.badge_id, fParam.cin_parent)

        if fParam.cin_parent is not None and fParam.cin_parent != student.cin_parent:
            student.parent = relations.resolveParent(session, fParam.cin_parent)
        updateIfChanged(
            student,
            fParam,
            [
                Student.username.key,
                Student.badge_id.key,
                Student.cin_parent.key,
                Student.phone_parent.key,
                Student.level.key,
            ],
        )
        haveUpdates = session.is_modified(student)
        if haveUpdates:
            session.commit()
            session.refresh(student)
        studentData = serialize(StudentSchema, student)
        if haveUpdates:
            logEvent(user, request_info, studentData)
        return studentData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_student.delete(
    URL_STUDENT + "/{id}",
    tags=["Student"],
    response_model=MessageResponse,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Deletes a student and removes it from the student list of its parent.
    Only superadmins and admins can delete students.
    """,
)
async def delete_student(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    studentLock = None
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.MANAGE_STUDENT)
        studentLock = acquireLock(Student.__tablename__, id)
        student = session.query(Student).filter(Student.id == id).first()
        if student is None:
            raise exceptions.InvalidIdentifier()

        studentData = serialize(StudentSchema, student)
        session.delete(student)
        session.commit()
        logEvent(user, request_info, studentData)
        return {"message": "Student deleted successfully"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(studentLock)
        session.close()


@route_student.get(
    URL_STUDENT,
    tags=["Student"],
    response_model=List[StudentSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches every student.
    Supports filtering by level and parent account.
    """,
)
async def fetch_students(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        return [serialize(StudentSchema, x) for x in searchStudent(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_student.get(
    URL_STUDENT + "/{id}",
    tags=["Student"],
    response_model=StudentSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
)
async def fetch_student(
    id: int,
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        validators.userToken(bearer, session)
        student = session.query(Student).filter(Student.id == id).first()
        if student is None:
            raise exceptions.InvalidIdentifier()
        return serialize(StudentSchema, student)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
