import json
import requests
from requests import Response
from requests.auth import HTTPBasicAuth

from transitdesk.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_USERNAME,
)

# Seconds to wait for the ingest API
INGEST_TIMEOUT = 5

ingestUrl = (
    f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
    f"/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"
)

# Reused connection pool for every event
ingestSession = requests.Session()
ingestSession.auth = HTTPBasicAuth(OPENOBSERVE_USERNAME, OPENOBSERVE_PASSWORD)
ingestSession.headers.update({"Content-type": "application/json"})


def logEvent(eventData: dict) -> Response:
    """
    Push one event to the TransitDesk stream of OpenObserve.

    Dates, enums and other values JSON cannot encode are sent as strings.

    Example:
        >>> logEvent(
        ...     {
        ...         "_method": "DELETE",
        ...         "_path": "/api/trips/4",
        ...         "_user_id": 2,
        ...         "_role": "admin",
        ...         "trip_id": "R1-T4",
        ...     }
        ... )
        <Response [200]>
    """
    body = json.dumps([eventData], default=str)
    return ingestSession.post(ingestUrl, data=body, timeout=INGEST_TIMEOUT)
