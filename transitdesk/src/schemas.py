from typing import Annotated, Any, Iterable, List, Optional, Type
from pydantic import BaseModel, BeforeValidator, ConfigDict


def toIdList(value: Iterable) -> List[int]:
    """
    Flatten a collection of ORM objects (or already extracted ids) into a
    list of ids. Used to expose relationship collections as reference lists.
    """
    if value is None:
        return []
    return [x if isinstance(x, int) else x.id for x in value]


def toId(value: Any) -> Optional[int]:
    """Reduce a related ORM object (or an id) to its id."""
    if value is None or isinstance(value, int):
        return value
    return value.id


# Relationship collection exposed as a list of ids
IdList = Annotated[List[int], BeforeValidator(toIdList)]
# Many-to-one relationship exposed as the id of the related record
IdRef = Annotated[Optional[int], BeforeValidator(toId)]


class ORMSchema(BaseModel):
    """Output schema read from ORM objects, emitted with camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class InputSchema(BaseModel):
    """JSON body accepting both camelCase aliases and field names."""

    model_config = ConfigDict(populate_by_name=True)


def serialize(schemaClass: Type[BaseModel], obj: Any) -> dict:
    """Render an ORM object as the JSON-ready dict of an output schema."""
    return schemaClass.model_validate(obj).model_dump(mode="json", by_alias=True)


class RequestInfo(BaseModel):
    method: str
    path: str


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    message: str


class MessageResponse(BaseModel):
    message: str
