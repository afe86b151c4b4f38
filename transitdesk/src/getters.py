from typing import List
from fastapi import Request
from sqlalchemy.orm.session import Session

from transitdesk.src import schemas
from transitdesk.src.db import User
from transitdesk.src.enums import UserRole


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
    """
    return schemas.RequestInfo(method=request.method, path=request.url.path)


def superadmins(session: Session) -> List[User]:
    """Fetch every superadmin account."""
    return session.query(User).filter(User.role == UserRole.SUPERADMIN.value).all()


def managedUsers(session: Session, admin: User) -> List[User]:
    """Fetch the accounts created by an admin (`myadmin` is the admin's email)."""
    return session.query(User).filter(User.myadmin == admin.email).all()
