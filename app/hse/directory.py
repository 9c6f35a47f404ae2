"""
Identity/role directory lookups over ``users`` (employee position + department).
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.hse.models import User


@dataclass(frozen=True)
class Person:
    id: int
    name: str
    position: str | None
    department: str | None


def _to_person(u: User) -> Person:
    return Person(id=u.id, name=u.display_name, position=u.position, department=u.department)


def find_people(
    s: Session,
    *,
    position_patterns: list[str] | tuple[str, ...],
    department: str | None = None,
) -> list[Person]:
    """
    Active users whose position matches any SQL LIKE pattern (case-insensitive),
    optionally restricted to one department. Returns an empty list when nothing matches.
    """
    patterns = [p.strip().lower() for p in position_patterns if p and p.strip()]
    if not patterns:
        return []
    stmt = select(User).where(
        User.is_active.is_(True),
        User.position.is_not(None),
        or_(*[func.lower(User.position).like(p) for p in patterns]),
    )
    if department:
        stmt = stmt.where(func.lower(User.department) == department.strip().lower())
    stmt = stmt.order_by(User.id.asc())
    return [_to_person(u) for u in s.execute(stmt).scalars().all()]


def get_people(s: Session, user_ids: list[int]) -> list[Person]:
    """Resolve explicit ids in the given order; unknown ids are omitted."""
    if not user_ids:
        return []
    rows = s.execute(select(User).where(User.id.in_(user_ids))).scalars().all()
    by_id = {u.id: u for u in rows}
    return [_to_person(by_id[i]) for i in user_ids if i in by_id]
