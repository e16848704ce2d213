"""Subject status lookups shared by token refresh and request authentication."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.core.errors import SubjectInactiveOrMissingError
from gatekeeper.models import User


def parse_subject_id(subject_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(subject_id, uuid.UUID):
        return subject_id
    try:
        return uuid.UUID(subject_id)
    except (ValueError, TypeError) as e:
        raise SubjectInactiveOrMissingError(f"Malformed subject id: {subject_id!r}") from e


async def get_active_subject(session: AsyncSession, subject_id: str | uuid.UUID) -> User:
    """Load a subject that exists, is not deleted and is active.

    Raises SubjectInactiveOrMissingError otherwise.
    """
    result = await session.execute(
        select(User)
        .where(User.id == parse_subject_id(subject_id))
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise SubjectInactiveOrMissingError("User not found")
    if user.is_deleted:
        raise SubjectInactiveOrMissingError("User has been deleted")
    if not user.is_active:
        raise SubjectInactiveOrMissingError("User account is deactivated")
    return user
