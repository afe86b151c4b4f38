from typing import Optional
from redis import Redis
from redis.exceptions import LockNotOwnedError
from redis.lock import Lock

from transitdesk.src import exceptions
from transitdesk.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    decode_responses=True,
)


def lockKey(tableName: str, pk: Optional[int] = None) -> str:
    """
    Redis key of a mutex.

    >>> lockKey("driver")
    'lock:driver'
    >>> lockKey("trip", 4)
    'lock:trip:4'
    """
    if pk is None:
        return f"lock:{tableName}"
    return f"lock:{tableName}:{pk}"


def acquireLock(
    tableName: str,
    pk: Optional[int] = None,
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Block until the mutex of a table, or of one of its rows, is held.

    A table lock (`pk` left out) serializes a check-then-act spanning
    several rows, e.g. claiming drivers for a vehicle. A row lock serializes
    writes on a single record, e.g. deleting a trip.

    Args:
        tableName (str): `__tablename__` of the model being written.
        pk (int, optional): Primary key of the row, for a row lock.
        timeOut (int): Seconds after which Redis expires the lock.
        blockingTimeOut (int): Seconds to wait for the lock.

    Returns:
        Lock: The held lock, to be given back to `releaseLock`.

    Raises:
        exceptions.LockAcquireTimeout: When the wait exceeds `blockingTimeOut`.
        exceptions.RedisDBError: When Redis cannot be reached.
    """
    try:
        lock = redisClient.lock(lockKey(tableName, pk), timeout=timeOut)
        if not lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            raise exceptions.LockAcquireTimeout()
        return lock
    except Exception as e:
        exceptions.handle(e)


def releaseLock(lock: Optional[Lock]) -> None:
    """
    Give back a lock taken by `acquireLock`. Handlers call it from their
    `finally` block, so None (nothing acquired yet) is accepted.

    A lock that already expired in Redis is left alone.
    """
    if lock is None:
        return
    try:
        lock.release()
    except LockNotOwnedError:
        exceptions.logException(
            exceptions.LockAcquireTimeout(detail=f"{lock.name} expired before release")
        )
