from enum import Enum
from typing import List, Dict

from transitdesk.src import schemas
from transitdesk.src.exceptions import APIException


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Build the `responses` argument of a route from the errors it can raise.

    Errors sharing a status code are documented as named examples of the
    same `ErrorResponse` entry, each one carrying its `X-Error` header and
    rendered `{message}` body.
    """
    responses: Dict[int, dict] = {}
    for exception in exceptions:
        entry = responses.setdefault(
            exception.status_code,
            {
                "model": schemas.ErrorResponse,
                "content": {"application/json": {"examples": {}}},
            },
        )
        examples = entry["content"]["application/json"]["examples"]
        examples[type(exception).__name__] = {
            "summary": str(exception.headers),
            "value": {"message": exception.detail},
        }
    return responses


def enumStr(enumClass) -> str:
    """
    Document the members of an enum in a field description.

    >>> enumStr(AssignmentType)
    'TRIP: trip, ROUTE: route, BLOCK: block'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Copy the fields set on an update form onto an ORM object.

    Fields left to None on the form are skipped, so a partial update never
    clears a column. Enum members are stored by value. Only differing values
    are assigned, which keeps `session.is_modified` meaningful for the
    "nothing to update" path of the handlers.

    Example:
        >>> updateIfChanged(stop, fParam, [Stop.stop_name.key, Stop.zone_id.key])
    """
    for field in fields:
        value = getattr(sourceObj, field, None)
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        if getattr(targetObj, field) != value:
            setattr(targetObj, field, value)


def toSeconds(gtfsTime: str) -> int:
    """
    Convert a GTFS `H:MM:SS` time into seconds since the start of the
    service day.

    GTFS allows hours beyond 23 for trips ending after midnight, so the
    value is not bounded by a day.

    Example:
        >>> toSeconds("25:35:00")
        92100
    """
    hours, minutes, seconds = (int(x) for x in gtfsTime.split(":"))
    return hours * 3600 + minutes * 60 + seconds


def sortedPoints(points: List[dict]) -> List[dict]:
    """Order shape points by `shape_pt_sequence`."""
    return sorted(points, key=lambda point: point["shape_pt_sequence"])
