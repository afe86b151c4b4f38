from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from transitdesk.src.constants import TOKEN_VALIDITY
from transitdesk.src.db import User, sessionMaker
from transitdesk.src import argon2, exceptions, getters, jwt
from transitdesk.src.loggers import logEvent
from transitdesk.src.functions import fuseExceptionResponses
from transitdesk.src.schemas import IdList
from transitdesk.src.urls import URL_SESSION

route_session = APIRouter()


## Output Schema
class TokenSchema(BaseModel):
    data: str
    expiresIn: int


class SessionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: str
    email: str
    myadmin: Optional[str]
    agencies: IdList
    token: TokenSchema


## Input Forms
class CreateForm(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


## API endpoints
@route_session.post(
    URL_SESSION,
    tags=["Session"],
    response_model=SessionSchema,
    responses=fuseExceptionResponses([exceptions.InvalidCredentials()]),
    description="""
    Opens a session for a user after validating the email and password.
    Returns the account details along with a signed access token valid for `TOKEN_VALIDITY` seconds.
    The token carries the user id, email, role, creator admin and granted agencies.
    Logs the authentication event.
    """,
)
async def create_session(
    fParam: CreateForm,
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = session.query(User).filter(User.email == fParam.email).first()
        if user is None:
            raise exceptions.InvalidCredentials()
        if not argon2.checkPassword(fParam.password, user.password):
            raise exceptions.InvalidCredentials()
        if argon2.needsRehash(user.password):
            user.password = argon2.makePassword(fParam.password)
            session.commit()

        agencies: List[int] = [agency.id for agency in user.agencies]
        accessToken = jwt.createAccessToken(
            {
                "userId": user.id,
                "email": user.email,
                "role": user.role,
                "myadmin": user.myadmin,
                "agencies": agencies,
            }
        )
        sessionData = SessionSchema(
            id=user.id,
            username=user.username,
            role=user.role,
            email=user.email,
            myadmin=user.myadmin,
            agencies=agencies,
            token=TokenSchema(data=accessToken, expiresIn=TOKEN_VALIDITY),
        )
        logEvent(user, request_info, {"email": user.email})
        return sessionData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
