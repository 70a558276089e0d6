"""Shared helpers for the SQLAlchemy-backed stores."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from trivia_api.core.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def wrap_db_errors(
    fn: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """
    Decorate a store method so any SQLAlchemyError rolls back the store's
    session and surfaces as PersistenceError. Errors are never swallowed.
    """

    @functools.wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
        try:
            return await fn(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("%s.%s failed", type(self).__name__, fn.__name__)
            raise PersistenceError() from exc

    return wrapper
