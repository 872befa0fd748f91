# services/assignment.py - Skills-based triage assignment
# ============================================================================

import re
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User, UserRole


def build_skill_pattern(skills: Iterable[str]) -> Optional[re.Pattern]:
    tags = [re.escape(str(skill)) for skill in skills if str(skill).strip()]
    if not tags:
        return None
    return re.compile("|".join(tags), re.IGNORECASE)


def has_matching_skill(user: User, pattern: re.Pattern) -> bool:
    return any(pattern.search(str(skill)) for skill in (user.skills or []))


async def _moderators_by_load(db: AsyncSession) -> List[User]:
    result = await db.execute(
        select(User)
        .where(User.role == UserRole.MODERATOR.value)
        .order_by(User.issues_resolved, User.score, User.created_at, User.id)
    )
    return list(result.scalars().all())


async def find_best_assignee(
    db: AsyncSession,
    skills: Iterable[str],
    created_by: Optional[int],
) -> Optional[User]:
    """Pick who should work a ticket; read-only.

    Least-loaded moderator with a matching skill, else the least-loaded
    moderator, else the oldest admin, else the ticket's creator.
    """
    moderators = await _moderators_by_load(db)

    pattern = build_skill_pattern(skills)
    if pattern is not None:
        for moderator in moderators:
            if has_matching_skill(moderator, pattern):
                return moderator

    if moderators:
        return moderators[0]

    result = await db.execute(
        select(User).where(User.role == UserRole.ADMIN.value).order_by(User.created_at, User.id).limit(1)
    )
    admin = result.scalar_one_or_none()
    if admin:
        return admin

    if created_by is not None:
        return await db.get(User, created_by)
    return None
