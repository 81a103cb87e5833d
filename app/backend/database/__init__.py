"""Database handler lifecycle.

A single process-wide `SQLHandler` is created lazily from `settings.DATABASE_URL`.
"""

from __future__ import annotations

from typing import Optional

from backend.database.sql_handler import SQLHandler
from config.settings import settings


_handler: Optional[SQLHandler] = None


def get_database_handler() -> SQLHandler:
    """Return the process-wide database handler, creating it on first use.

    Returns:
        SQLHandler: The handler.
    """

    global _handler
    if _handler is None:
        _handler = SQLHandler(settings.DATABASE_URL, echo=settings.DEBUG)
    return _handler


async def initialize_database() -> SQLHandler:
    """Create the handler and ensure all tables exist.

    Returns:
        SQLHandler: The initialized handler.
    """

    handler = get_database_handler()
    await handler.create_tables()
    return handler


async def close_database() -> None:
    """Dispose of the process-wide handler."""

    global _handler
    if _handler is not None:
        await _handler.dispose()
        _handler = None
