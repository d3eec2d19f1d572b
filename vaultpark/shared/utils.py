import asyncio
import sys
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from typing import Awaitable, Callable, TypeVar

from loguru import logger as loguru_logger

from vaultpark.config.settings_env import settings
from vaultpark.domain.errors import StoreError, StoreTimeout

T = TypeVar("T")


def initialize_logger():
    """Initialize the logger based on DEV_MODE setting."""
    loguru_logger.remove()

    if settings.DEV_MODE:
        loguru_logger.add(sys.stderr, level="TRACE")
    else:
        loguru_logger.add(sys.stderr, level="INFO")

    return loguru_logger


# Initialize logger
logger = initialize_logger()


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.LOCAL_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_millis() -> int:
    return int(utc_now().timestamp() * 1000)


def ensure_aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def with_timeout(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """Await a store call, converting a hang into a retryable StoreTimeout."""
    limit = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as e:
        raise StoreTimeout(f"Store call exceeded {limit}s") from e


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    attempts: int | None = None,
    description: str = "store operation",
) -> T:
    """Run operation, retrying StoreTimeout/StoreConflict a bounded number of times."""
    max_attempts = attempts if attempts is not None else settings.STORE_MAX_RETRIES
    attempt = 1
    while True:
        try:
            return await operation()
        except StoreError as e:
            if not e.retryable or attempt >= max_attempts:
                raise
            logger.warning(f"{description} failed ({e.kind}), retry {attempt}/{max_attempts - 1}")
            attempt += 1
