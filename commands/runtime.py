"""Shared plumbing for command handlers: engine lifetime and output."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel

from models.config import settings
from services.engine import ScrapeEngine
from services.row_store import DiskRowStore
from ui.components import loading, print_model

T = TypeVar("T", bound=BaseModel)


def run_engine(operation: Callable[[ScrapeEngine], Awaitable[T]], msg: str) -> T:
    """Build an engine backed by the on-disk store, run one operation, close it."""

    async def _run() -> T:
        store = DiskRowStore(settings.cache.store_dir)
        try:
            async with ScrapeEngine.from_settings(settings, store=store) as engine:
                with loading(msg):
                    return await operation(engine)
        finally:
            store.close()

    return asyncio.run(_run())


def emit(result: BaseModel) -> int:
    """Print a result model and turn its success flag into an exit code."""
    print_model(result)
    return 0 if getattr(result, "success", True) else 1
