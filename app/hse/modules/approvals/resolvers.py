"""
Assignee resolution strategies for approval steps.

- ExplicitAssignees: the submitter names the approvers.
- PositionPatternResolver: look people up in the directory by position pattern,
  optionally inside the document's department ("the Section Head of this department").
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from app.hse import constants as C
from app.hse.directory import Person, find_people, get_people
from app.hse.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from app.hse.modules.document_control.models import Document


class AssigneeResolver:
    # Explicit lists must name at least one person; directory lookups may come back empty.
    allows_empty = False

    def resolve(self, s: Session, document: Document) -> list[Person]:
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        return {"strategy": type(self).__name__}


@dataclass(frozen=True)
class ExplicitAssignees(AssigneeResolver):
    user_ids: tuple[int, ...]

    def resolve(self, s: Session, document: Document) -> list[Person]:
        if len(set(self.user_ids)) != len(self.user_ids):
            raise ValidationError("Assignee list contains duplicates.", user_ids=list(self.user_ids))
        people = get_people(s, list(self.user_ids))
        missing = sorted(set(self.user_ids) - {p.id for p in people})
        if missing:
            raise NotFoundError(f"Unknown assignee user id(s): {missing}", user_ids=missing)
        return people

    def describe(self) -> dict[str, Any]:
        return {"strategy": "explicit", "user_ids": list(self.user_ids)}


@dataclass(frozen=True)
class PositionPatternResolver(AssigneeResolver):
    patterns: tuple[str, ...]
    same_department: bool = True
    limit: int | None = None

    allows_empty = True

    def resolve(self, s: Session, document: Document) -> list[Person]:
        people = find_people(
            s,
            position_patterns=self.patterns,
            department=document.department if self.same_department else None,
        )
        if self.limit is not None:
            people = people[: self.limit]
        return people

    def describe(self) -> dict[str, Any]:
        return {
            "strategy": "position_pattern",
            "patterns": list(self.patterns),
            "same_department": self.same_department,
        }


@dataclass
class StepSpec:
    """One requested approval step, before assignees are resolved."""

    name: str
    resolver: AssigneeResolver
    mode: str = C.MODE_SERIAL
    quorum_required: int = 1
    completion_policy: str = C.POLICY_QUORUM
    metadata: dict[str, Any] = field(default_factory=dict)


SECTION_HEAD_PATTERNS = ("%sect% head%", "%section head%", "%kepala seksi%")
PJO_PATTERNS = ("%pjo%", "%project manager%", "%penanggung jawab operasional%")


def default_review_chain() -> list[StepSpec]:
    """
    Two-step chain: the Section Head of the document's department, then any
    PJO / Project-Manager-equivalent.
    """
    return [
        StepSpec(
            name="Section Head Review",
            resolver=PositionPatternResolver(patterns=SECTION_HEAD_PATTERNS, same_department=True),
            mode=C.MODE_SERIAL,
            quorum_required=1,
        ),
        StepSpec(
            name="PJO Approval",
            resolver=PositionPatternResolver(patterns=PJO_PATTERNS, same_department=False),
            mode=C.MODE_SERIAL,
            quorum_required=1,
        ),
    ]


def step_specs_from_payload(raw_steps: Any) -> list[StepSpec]:
    """
    Parse API step definitions:
      {"name", "mode"?, "quorum_required"?, "completion_policy"?,
       "assignees": [user_id, ...]}  or  {"position_patterns": [...], "same_department"?}
    """
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ValidationError("steps must be a non-empty list.")
    specs: list[StepSpec] = []
    for idx, raw in enumerate(raw_steps, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Step {idx} must be an object.", step_number=idx)
        name = (raw.get("name") or "").strip() or f"Step {idx}"
        mode = (raw.get("mode") or C.MODE_SERIAL).strip().upper()
        policy = (raw.get("completion_policy") or C.POLICY_QUORUM).strip().upper()
        try:
            quorum = int(raw.get("quorum_required", raw.get("quorum", 1)))
        except (TypeError, ValueError):
            raise ValidationError(f"Step {idx} quorum must be an integer.", step_number=idx, step_name=name)

        if raw.get("position_patterns"):
            patterns = raw["position_patterns"]
            if isinstance(patterns, str):
                patterns = [patterns]
            resolver: AssigneeResolver = PositionPatternResolver(
                patterns=tuple(str(p) for p in patterns),
                same_department=bool(raw.get("same_department", True)),
            )
        else:
            assignees = raw.get("assignees") or []
            try:
                ids = tuple(int(a) for a in assignees)
            except (TypeError, ValueError):
                raise ValidationError(f"Step {idx} assignees must be user ids.", step_number=idx, step_name=name)
            resolver = ExplicitAssignees(user_ids=ids)

        specs.append(StepSpec(name=name, resolver=resolver, mode=mode, quorum_required=quorum, completion_policy=policy))
    return specs
