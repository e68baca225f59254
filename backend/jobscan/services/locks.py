"""Per-owner scan serialization.

Two cycles for the same owner can double-refresh the token or move the cursor
backwards, so they must never overlap. ``owner_scan_lock`` covers one process;
``redis_owner_lock`` covers Celery workers on different hosts.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

import redis
from redis.exceptions import LockError, RedisError

from ..config import settings
from ..errors import ScanInProgressError

logger = logging.getLogger(__name__)

_locks: Dict[int, threading.Lock] = {}
_registry_lock = threading.Lock()

_redis_client = None
_redis_unavailable = False


def _lock_for(owner_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(owner_id)
        if lock is None:
            lock = _locks[owner_id] = threading.Lock()
        return lock


@contextmanager
def owner_scan_lock(owner_id: int) -> Iterator[None]:
    """Hold the in-process lock for this owner; raise ScanInProgressError if taken."""
    lock = _lock_for(owner_id)
    if not lock.acquire(blocking=False):
        raise ScanInProgressError(owner_id=owner_id)
    try:
        yield
    finally:
        lock.release()


def get_redis_client():
    """Shared Redis client, or None when Redis is unreachable."""
    global _redis_client, _redis_unavailable

    if _redis_unavailable:
        return None
    if _redis_client is not None:
        return _redis_client

    try:
        client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        _redis_client = client
        return _redis_client
    except RedisError as e:
        logger.warning(f"Redis unavailable: {e}. Scan lock is process-local only.")
        _redis_unavailable = True
        return None


@contextmanager
def redis_owner_lock(owner_id: int, client=None) -> Iterator[None]:
    """Cross-process lock ``scan-lock:<owner_id>``; a no-op without Redis."""
    client = client if client is not None else get_redis_client()
    if client is None:
        yield
        return
    lock = client.lock(f"scan-lock:{owner_id}", timeout=settings.scan_lock_timeout_s)
    if not lock.acquire(blocking=False):
        raise ScanInProgressError(owner_id=owner_id)
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError as e:
            # Lock expired under us (scan outlived scan_lock_timeout_s).
            logger.warning(f"Releasing scan lock for owner {owner_id} failed: {e}")
