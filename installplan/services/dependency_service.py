"""
PWBS Dependency Resolver — service layer.

Two kinds of PWBS → PWBS ordering edges live in ``pwbs_dependencies``:
    - defaults:  global template (is_default=True, no project)
    - overrides: project-specific (is_default=False, project_number set)

The effective set for a project is every override plus every default whose
(from_pwbs, to_pwbs) key is not overridden. Resolution is recomputed on each
call because overrides can change at any time.

Business logic for:
    - merge_dependencies:        pure default/override merge
    - resolve_dependencies:      effective set for a project (or defaults only)
    - get_dependencies_for_pwbs: effective outgoing edges of one category
    - set/remove default and project edges (upsert / delete)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from installplan.core.exceptions import NotFoundError, ValidationError
from installplan.models import db
from installplan.models.scheduling import DependencyType, PwbsDependency

logger = logging.getLogger(__name__)

DependencyKey = tuple[str, str]


@dataclass(frozen=True)
class EffectiveDependency:
    """One edge of a resolved dependency set."""

    from_pwbs: str
    to_pwbs: str
    dependency_type: DependencyType
    is_default: bool
    project_number: str | None = None
    id: int | None = None

    @property
    def key(self) -> DependencyKey:
        return (self.from_pwbs, self.to_pwbs)

    @classmethod
    def from_row(cls, row: PwbsDependency) -> "EffectiveDependency":
        return cls(
            from_pwbs=row.from_pwbs,
            to_pwbs=row.to_pwbs,
            dependency_type=DependencyType(row.dependency_type),
            is_default=bool(row.is_default),
            project_number=row.project_number,
            id=row.id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_pwbs": self.from_pwbs,
            "to_pwbs": self.to_pwbs,
            "dependency_type": self.dependency_type.value,
            "is_default": self.is_default,
            "project_number": self.project_number,
        }


# ── Pure merge ───────────────────────────────────────────────────────────────


def merge_dependencies(
    defaults: Mapping[DependencyKey, EffectiveDependency],
    overrides: Mapping[DependencyKey, EffectiveDependency],
) -> list[EffectiveDependency]:
    """Merge default and override edges into the effective set.

    An override replaces the default with the exact same (from, to) key;
    there is no partial matching. Output is sorted by key so callers never
    depend on storage order.
    """
    merged: dict[DependencyKey, EffectiveDependency] = dict(defaults)
    merged.update(overrides)
    return [merged[key] for key in sorted(merged)]


def _index(rows: Iterable[PwbsDependency]) -> dict[DependencyKey, EffectiveDependency]:
    return {row.key: EffectiveDependency.from_row(row) for row in rows}


# ── Queries ──────────────────────────────────────────────────────────────────


def get_default_dependencies() -> list[PwbsDependency]:
    """Return the global template edges ordered by (from_pwbs, to_pwbs)."""
    stmt = (
        select(PwbsDependency)
        .where(PwbsDependency.is_default.is_(True))
        .order_by(PwbsDependency.from_pwbs, PwbsDependency.to_pwbs)
    )
    return list(db.session.execute(stmt).scalars())


def get_project_overrides(project_number: str) -> list[PwbsDependency]:
    """Return only the edges customised for *project_number*."""
    stmt = (
        select(PwbsDependency)
        .where(
            PwbsDependency.is_default.is_(False),
            PwbsDependency.project_number == project_number,
        )
        .order_by(PwbsDependency.from_pwbs, PwbsDependency.to_pwbs)
    )
    return list(db.session.execute(stmt).scalars())


def resolve_dependencies(project_number: str | None = None) -> list[EffectiveDependency]:
    """Return the effective dependency set; defaults only when no project is given."""
    defaults = _index(get_default_dependencies())
    if not project_number:
        return merge_dependencies(defaults, {})
    overrides = _index(get_project_overrides(project_number))
    return merge_dependencies(defaults, overrides)


def get_dependencies_for_pwbs(
    pwbs: str, project_number: str | None = None,
) -> list[EffectiveDependency]:
    """Effective edges where *pwbs* is the predecessor (from_pwbs)."""
    return [dep for dep in resolve_dependencies(project_number) if dep.from_pwbs == pwbs]


# ── Mutations ────────────────────────────────────────────────────────────────


def _validate_edge(from_pwbs: str, to_pwbs: str, dependency_type) -> DependencyType:
    errors = {}
    if not from_pwbs:
        errors["from_pwbs"] = "required"
    if not to_pwbs:
        errors["to_pwbs"] = "required"
    if from_pwbs and from_pwbs == to_pwbs:
        errors["to_pwbs"] = "must differ from from_pwbs"
    try:
        dep_type = DependencyType(dependency_type)
    except ValueError:
        dep_type = None
        errors["dependency_type"] = f"must be one of {[t.value for t in DependencyType]}"
    if errors:
        raise ValidationError("Invalid PWBS dependency", details=errors)
    return dep_type


def _find_edge(from_pwbs: str, to_pwbs: str, project_number: str | None) -> PwbsDependency | None:
    stmt = select(PwbsDependency).where(
        PwbsDependency.from_pwbs == from_pwbs,
        PwbsDependency.to_pwbs == to_pwbs,
    )
    if project_number is None:
        stmt = stmt.where(PwbsDependency.is_default.is_(True))
    else:
        stmt = stmt.where(
            PwbsDependency.is_default.is_(False),
            PwbsDependency.project_number == project_number,
        )
    return db.session.execute(stmt.limit(1)).scalar_one_or_none()


def _upsert_edge(
    from_pwbs: str, to_pwbs: str, dependency_type, project_number: str | None,
) -> tuple[PwbsDependency, bool]:
    dep_type = _validate_edge(from_pwbs, to_pwbs, dependency_type)
    existing = _find_edge(from_pwbs, to_pwbs, project_number)
    if existing:
        existing.dependency_type = dep_type.value
        dep, created = existing, False
    else:
        dep = PwbsDependency(
            from_pwbs=from_pwbs,
            to_pwbs=to_pwbs,
            dependency_type=dep_type.value,
            is_default=project_number is None,
            project_number=project_number,
        )
        db.session.add(dep)
        created = True
    try:
        db.session.commit()
    except IntegrityError:
        # a concurrent writer inserted the same edge first; update that row
        db.session.rollback()
        dep = _find_edge(from_pwbs, to_pwbs, project_number)
        if dep is None:
            raise
        dep.dependency_type = dep_type.value
        db.session.commit()
        created = False
    logger.info(
        "PWBS dependency %s: %s→%s %s",
        "created" if created else "updated", from_pwbs, to_pwbs, dep_type.value,
        extra={"project_number": project_number},
    )
    return dep, created


def _remove_edge(from_pwbs: str, to_pwbs: str, project_number: str | None) -> dict:
    existing = _find_edge(from_pwbs, to_pwbs, project_number)
    if not existing:
        raise NotFoundError(
            resource="PwbsDependency",
            resource_id=f"{from_pwbs}->{to_pwbs}",
            project_number=project_number,
        )
    data = existing.to_dict()
    db.session.delete(existing)
    db.session.commit()
    logger.info("PWBS dependency removed: %s→%s", from_pwbs, to_pwbs,
                extra={"project_number": project_number})
    return data


def set_default_dependency(from_pwbs: str, to_pwbs: str, dependency_type) -> tuple[PwbsDependency, bool]:
    """Create or update a template edge. Returns (dependency, created)."""
    return _upsert_edge(from_pwbs, to_pwbs, dependency_type, None)


def set_project_dependency(
    project_number: str, from_pwbs: str, to_pwbs: str, dependency_type,
) -> tuple[PwbsDependency, bool]:
    """Create or update a project override. Returns (dependency, created)."""
    if not project_number:
        raise ValidationError("project_number is required", details={"project_number": "required"})
    return _upsert_edge(from_pwbs, to_pwbs, dependency_type, project_number)


def remove_default_dependency(from_pwbs: str, to_pwbs: str) -> dict:
    """Delete a template edge; NotFoundError when it does not exist."""
    return _remove_edge(from_pwbs, to_pwbs, None)


def remove_project_dependency(project_number: str, from_pwbs: str, to_pwbs: str) -> dict:
    """Delete a project override, re-exposing the default (if any)."""
    return _remove_edge(from_pwbs, to_pwbs, project_number)
