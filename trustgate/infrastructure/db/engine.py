from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from trustgate.domain.exceptions import ExternalServiceError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@lru_cache(maxsize=4)
def get_engine(dsn: str):
    return create_engine(dsn, future=True, pool_pre_ping=True)


async def run_sync(fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Runs a blocking repository call off the event loop."""
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except SQLAlchemyError as exc:
        logger.warning("db: query_failed fn=%s error=%s", getattr(fn, "__name__", fn), exc)
        raise ExternalServiceError("Database is unavailable. Please try again.") from exc
