from typing import Optional
from transitdesk.src.db import User
from transitdesk.src import openobserve
from transitdesk.src.schemas import RequestInfo


def logEvent(user: Optional[User], requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        user (User | None): Authenticated account, None on unauthenticated routes.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Entity representation or other event-specific details.

    Notes:
        - Automatically attaches `_method`, `_path`, `_user_id` and `_role`.
        - Password hashes are never part of `data`; callers log the
          serialized output schema, which has no password field.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_user_id": user.id if user else None,
        "_role": user.role if user else None,
    }
    logDetails.update(data)
    openobserve.logEvent(logDetails)
