from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from transitdesk.api.bearer import bearer_user
from transitdesk.src.db import Message, User, sessionMaker
from transitdesk.src import exceptions, validators, getters
from transitdesk.src.loggers import logEvent
from transitdesk.src.enums import Permission, UserRole
from transitdesk.src.constants import ADMIN_SENDER, PARENT_SENDER_PREFIX
from transitdesk.src.functions import fuseExceptionResponses
from transitdesk.src.permissions import hasPermission
from transitdesk.src.schemas import InputSchema, ORMSchema, serialize
from transitdesk.src.urls import URL_MESSAGE

route_message = APIRouter()


## Output Schema
class MessageSchema(ORMSchema):
    id: int
    sender: str
    content: str
    timestamp: datetime
    is_read: bool = Field(alias="isRead")
    parent_message_id: Optional[int] = Field(alias="parentMessageId")
    updated_on: Optional[datetime]
    created_on: datetime


class MessageResultSchema(MessageSchema):
    message: str


## Input Forms
class CreateForm(InputSchema):
    content: str = Field(min_length=1, max_length=4096)


## Query Parameters
class QueryParams(BaseModel):
    read: bool | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int | None = Field(Query(default=None, gt=0))


## Function
def senderOf(user: User) -> str:
    """Sender label of the messages written by an account."""
    if user.role == UserRole.PARENT:
        return PARENT_SENDER_PREFIX + user.email
    return ADMIN_SENDER


def messageContent(content: str) -> str:
    content = content.strip()
    if not content:
        raise exceptions.InvalidValue(Message.content)
    return content


def threadScope(user: User, query):
    """
    Restrict a `Message` query to the messages visible to the caller.
    Administration sees every message, a parent its own messages and the
    replies written to them.
    """
    if hasPermission(user.role, Permission.READ_ALL_MESSAGE):
        return query
    sender = senderOf(user)
    ownIds = select(Message.id).where(Message.sender == sender)
    return query.filter(
        or_(Message.sender == sender, Message.parent_message_id.in_(ownIds))
    )


def searchMessage(session: Session, user: User, qParam: QueryParams) -> List[Message]:
    query = threadScope(user, session.query(Message))
    # Filters
    if qParam.read is not None:
        query = query.filter(Message.is_read == qParam.read)
    # Pagination
    query = query.order_by(Message.timestamp.desc(), Message.id.desc())
    query = query.offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


## API endpoints
@route_message.post(
    URL_MESSAGE,
    tags=["Message"],
    response_model=MessageSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidValue(Message.content)]
    ),
    description="""
    Sends a new message.
    Messages written by a parent are signed `Parent:<email>`, the others `Admin`.
    """,
)
async def create_message(
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)

        message = Message(
            sender=senderOf(user),
            content=messageContent(fParam.content),
            is_read=False,
        )
        session.add(message)
        session.commit()
        session.refresh(message)

        messageData = serialize(MessageSchema, message)
        logEvent(user, request_info, messageData)
        return messageData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_message.post(
    URL_MESSAGE + "/{id}/reply",
    tags=["Message"],
    response_model=MessageSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidValue(Message.content),
        ]
    ),
    description="""
    Replies to a message in the name of the administration.
    Only superadmins and admins can reply.
    The replied message is marked as read. Replying to a reply answers the original message.
    """,
)
async def reply_message(
    id: int,
    fParam: CreateForm,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        validators.userPermission(user, Permission.REPLY_MESSAGE)
        content = messageContent(fParam.content)
        original = session.query(Message).filter(Message.id == id).first()
        if original is None:
            raise exceptions.InvalidIdentifier()

        reply = Message(
            sender=ADMIN_SENDER,
            content=content,
            is_read=False,
            parent_message_id=original.parent_message_id or original.id,
        )
        original.is_read = True
        session.add(reply)
        session.commit()
        session.refresh(reply)

        replyData = serialize(MessageSchema, reply)
        logEvent(user, request_info, replyData)
        return replyData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_message.put(
    URL_MESSAGE + "/{id}/read",
    tags=["Message"],
    response_model=MessageResultSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Marks a message as read.
    Parents can mark their own messages and the replies written to them, the administration any message.
    """,
)
async def read_message(
    id: int,
    bearer=Depends(bearer_user),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        message = session.query(Message).filter(Message.id == id).first()
        if message is None:
            raise exceptions.InvalidIdentifier()
        visible = threadScope(user, session.query(Message))
        if visible.filter(Message.id == id).first() is None:
            raise exceptions.NoPermission()

        haveUpdates = not message.is_read
        if haveUpdates:
            message.is_read = True
            session.commit()
            session.refresh(message)
        messageData = serialize(MessageSchema, message)
        if haveUpdates:
            logEvent(user, request_info, messageData)
        return {**messageData, "message": "Message marked as read"}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_message.get(
    URL_MESSAGE,
    tags=["Message"],
    response_model=List[MessageSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the messages visible to the caller, latest first.
    The administration sees every message, parents their own messages and the replies written to them.
    """,
)
async def fetch_messages(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_user),
):
    try:
        session = sessionMaker()
        user = validators.userToken(bearer, session)
        return [
            serialize(MessageSchema, x) for x in searchMessage(session, user, qParam)
        ]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
