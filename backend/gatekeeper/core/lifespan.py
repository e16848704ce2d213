"""Startup and shutdown sequence for the application."""

import asyncio
import logging

from gatekeeper.core.config import settings
from gatekeeper.core.database import async_session_maker, create_schema
from gatekeeper.core.kv_store import close_stores
from gatekeeper.core.logging import get_logger, setup_logging

_logger = get_logger("lifespan")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error(f"Background task {task.get_name()} failed: {exc}")


async def seed_access_control() -> None:
    """Create default roles and, if configured, the super-admin account."""
    from gatekeeper.services.auth import AuthService
    from gatekeeper.services.permissions import PermissionResolver

    async with async_session_maker() as db:
        await PermissionResolver(db).ensure_default_roles()

        if settings.super_admin_email and settings.super_admin_password:
            await AuthService(db).bootstrap_super_admin(
                settings.super_admin_email, settings.super_admin_password
            )


async def startup(logger: logging.Logger) -> list[asyncio.Task]:
    """Initialise logging, schema, seed data and background tasks.

    Returns the background tasks that ``shutdown`` must cancel.
    """
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    await create_schema()
    await seed_access_control()

    from gatekeeper.middleware import store_cleanup_loop

    tasks: list[asyncio.Task] = []
    if not settings.redis_url:
        cleanup_task = asyncio.create_task(store_cleanup_loop(), name="store-cleanup")
        cleanup_task.add_done_callback(task_done_callback)
        tasks.append(cleanup_task)

    return tasks


async def shutdown(logger: logging.Logger, tasks: list[asyncio.Task]) -> None:
    """Cancel background tasks and close store connections."""
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    await close_stores()
    logger.info("Key-value stores closed")
