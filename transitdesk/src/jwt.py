from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt

from transitdesk.src import exceptions
from transitdesk.src.constants import JWT_ALGORITHM, JWT_SECRET_KEY, TOKEN_VALIDITY


if not JWT_SECRET_KEY:
    raise ValueError("JWT_SECRET_KEY environment variable is not set")


def createAccessToken(data: dict, expiresDelta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data (dict): Claims to encode in the token (e.g. `userId`, `role`).
        expiresDelta (timedelta, optional): Validity of the token.
            Defaults to `TOKEN_VALIDITY` seconds.

    Returns:
        str: The encoded token.
    """
    toEncode = data.copy()
    if expiresDelta is None:
        expiresDelta = timedelta(seconds=TOKEN_VALIDITY)
    toEncode.update({"exp": datetime.now(timezone.utc) + expiresDelta})
    return jwt.encode(toEncode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verifyAccessToken(token: str) -> dict:
    """
    Verify the signature and expiry of a JWT access token.

    Args:
        token (str): The bearer token string provided by the client.

    Returns:
        dict: The decoded claims.

    Raises:
        exceptions.InvalidToken: If the token is malformed, tampered with,
            expired or carries no `userId` claim.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise exceptions.InvalidToken()
    if payload.get("userId") is None:
        raise exceptions.InvalidToken()
    return payload
