"""
Centralized exception handling for TransitDesk API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or services.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from typing import Any
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError
from psycopg2.errorcodes import UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION
from pydantic import ValidationError
from redis.exceptions import RedisError


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def fieldName(field: Any) -> str:
    """Return the public name of an ORM attribute, column or plain string."""
    if isinstance(field, str):
        return field
    return getattr(field, "key", None) or field.name


def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.

    PostgreSQL exposes the offending key through the diagnostics of the
    driver error, other backends only through the error text.
    """
    diag = getattr(e.orig, "diag", None)
    errorMessage: str = getattr(diag, "message_detail", None) or str(e.orig)
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def integrityKind(e: IntegrityError) -> str | None:
    sqlstate = getattr(e.orig, "pgcode", None)
    text = str(e.orig).upper()
    if sqlstate == UNIQUE_VIOLATION or "UNIQUE CONSTRAINT" in text:
        return UNIQUE_VIOLATION
    if sqlstate == FOREIGN_KEY_VIOLATION or "FOREIGN KEY CONSTRAINT" in text:
        return FOREIGN_KEY_VIOLATION
    return None


def formatValidationError(e: ValidationError) -> str:
    fields = []
    for error in e.errors():
        location = ".".join(str(x) for x in error.get("loc", ()) if x != "body")
        fields.append(location or error.get("msg", "value"))
    return ", ".join(fields)


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses. Anything unexpected is logged
    with its traceback and surfaced as `UnhandledError`.
    """
    if isinstance(e, APIException):
        raise e
    if isinstance(e, IntegrityError):
        kind = integrityKind(e)
        if kind == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if kind == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
    if isinstance(e, ValidationError):
        raise InvalidValue(formatValidationError(e))
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

    logException(e)
    raise UnhandledError(detail=str(e))


# ---------------------------------------------------------------------------
# Validation errors (400)
# ---------------------------------------------------------------------------
class MissingParameter(APIException):
    headers = {"X-Error": "MissingParameter"}

    def __init__(self, field):
        detail = f"The {fieldName(field)} is missing"
        super().__init__(detail=detail)


class InvalidValue(APIException):
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, field):
        detail = f"Invalid {fieldName(field)} is provided"
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class ForeignKeyViolation(APIException):
    headers = {"X-Error": "ForeignKeyViolation"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class DuplicateStopTime(APIException):
    detail = "A stop time already exists for this trip and stop"
    headers = {"X-Error": "DuplicateStopTime"}


class InvalidDriverCount(APIException):
    headers = {"X-Error": "InvalidDriverCount"}

    def __init__(self, minimum: int, maximum: int):
        detail = f"A vehicle must have between {minimum} and {maximum} drivers"
        super().__init__(detail=detail)


class DriverAlreadyAssigned(APIException):
    headers = {"X-Error": "DriverAlreadyAssigned"}

    def __init__(self, cin_number: str):
        detail = f"The driver {cin_number} is already assigned to another vehicle"
        super().__init__(detail=detail)


class AlreadyAssigned(APIException):
    headers = {"X-Error": "AlreadyAssigned"}

    def __init__(self, child_class, parent_class):
        detail = f"The {child_class.__name__} is already assigned to this {parent_class.__name__}"
        super().__init__(detail=detail)


class NotAssigned(APIException):
    headers = {"X-Error": "NotAssigned"}

    def __init__(self, child_class, parent_class):
        detail = f"The {child_class.__name__} is not assigned to this {parent_class.__name__}"
        super().__init__(detail=detail)


class InvalidAssignmentType(APIException):
    detail = "The assignment type must be one of trip, route or block"
    headers = {"X-Error": "InvalidAssignmentType"}


class DataInUse(APIException):
    headers = {"X-Error": "DataInUse"}

    def __init__(self, orm_class):
        detail = f"The {orm_class.__name__} is currently in use"
        super().__init__(detail=detail)


# ---------------------------------------------------------------------------
# Authentication errors (401)
# ---------------------------------------------------------------------------
class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"X-Error": "InvalidToken"}


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid email or password"
    headers = {"X-Error": "InvalidCredentials"}


# ---------------------------------------------------------------------------
# Authorization errors (403)
# ---------------------------------------------------------------------------
class NoPermission(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "This user has no permission to perform this action"
    headers = {"X-Error": "NoPermission"}


class ProtectedAccount(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "This account is protected and cannot be modified"
    headers = {"X-Error": "ProtectedAccount"}


# ---------------------------------------------------------------------------
# Lookup errors (404)
# ---------------------------------------------------------------------------
class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, field):
        detail = f"Invalid {fieldName(field)} is provided"
        super().__init__(detail=detail)


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------
class LockAcquireTimeout(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UnhandledError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    headers = {"X-Error": "UnhandledError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)
