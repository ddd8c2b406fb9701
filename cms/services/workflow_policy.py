"""
Workflow Policy Service — per-entity-type approval configuration.

Answers one question for the state machine: does a submission of this
entity type by a user holding these roles skip review?

Decision table for should_auto_approve():
    no config row                         → True   (permissive default)
    requires_approval = False             → True
    auto_approve_for_roles empty / None   → False
    otherwise                             → submitter holds any listed role

Evaluated at submit time only; role membership and config may change
between draft creation and submission.

min_approvers is validated and stored but not enforced; one approving
reviewer completes a workflow.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import SimpleNamespace

from sqlalchemy import select

from cms.core.exceptions import NotFoundError, ValidationError
from cms.models import db
from cms.models.workflow import WORKFLOW_ENTITY_TYPES, WorkflowConfig
from cms.utils.helpers import db_commit_or_raise

logger = logging.getLogger(__name__)

# Values used when an entity type has no stored config
DEFAULT_POLICY = {
    "requires_approval": True,
    "auto_approve_for_roles": [],
    "min_approvers": 1,
    "notify_on_submit": True,
    "notify_on_complete": True,
}

_BOOL_FIELDS = ("requires_approval", "notify_on_submit", "notify_on_complete")


def _defaults():
    return {**DEFAULT_POLICY, "auto_approve_for_roles": []}


def _find_config(entity_type: str) -> WorkflowConfig | None:
    return db.session.execute(
        select(WorkflowConfig).where(WorkflowConfig.entity_type == entity_type)
    ).scalar_one_or_none()


def _validate_entity_type(entity_type: str) -> None:
    if entity_type not in WORKFLOW_ENTITY_TYPES:
        raise ValidationError(
            f"Invalid entity_type '{entity_type}'. "
            f"Must be one of: {', '.join(sorted(WORKFLOW_ENTITY_TYPES))}",
            details={"entity_type": "unknown"},
        )


# ── Policy decision ──────────────────────────────────────────────────────────


def should_auto_approve(entity_type: str, submitter_role_names: Iterable[str]) -> bool:
    """Return True when a submission bypasses human review.

    Reads only; no session writes.
    """
    config = _find_config(entity_type)
    if config is None or not config.requires_approval:
        return True

    allowed = set(config.auto_approve_for_roles or [])
    if not allowed:
        return False

    return any(name in allowed for name in submitter_role_names)


def get_effective_config(entity_type: str):
    """Return the stored config, or an unsaved object carrying the defaults.

    Callers only read attributes (notify_on_submit, ...), so the default is
    a plain namespace rather than a transient ORM row.
    """
    config = _find_config(entity_type)
    if config is not None:
        return config
    return SimpleNamespace(entity_type=entity_type, **_defaults())


# ── Config management ────────────────────────────────────────────────────────


def list_configs() -> list[dict]:
    rows = db.session.execute(
        select(WorkflowConfig).order_by(WorkflowConfig.entity_type)
    ).scalars().all()
    return [c.to_dict() for c in rows]


def get_config(entity_type: str) -> dict:
    """Return the stored config for an entity type.

    Raises:
        NotFoundError: no config row exists (defaults are not materialised).
    """
    config = _find_config(entity_type)
    if config is None:
        raise NotFoundError(resource="WorkflowConfig", resource_id=entity_type)
    return config.to_dict()


def upsert_config(entity_type: str, data: dict) -> dict:
    """Create or partially update the config for an entity type.

    Only keys present in ``data`` are changed; a new row starts from
    DEFAULT_POLICY.

    Raises:
        ValidationError: unknown entity type or a field with the wrong type.
    """
    _validate_entity_type(entity_type)

    errors = {}
    for field in _BOOL_FIELDS:
        if field in data and not isinstance(data[field], bool):
            errors[field] = "must be a boolean"
    if "auto_approve_for_roles" in data:
        roles = data["auto_approve_for_roles"]
        if roles is not None and (
            not isinstance(roles, list) or not all(isinstance(r, str) and r.strip() for r in roles)
        ):
            errors["auto_approve_for_roles"] = "must be a list of role names"
    if "min_approvers" in data:
        value = data["min_approvers"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            errors["min_approvers"] = "must be an integer >= 1"
    if errors:
        raise ValidationError("Invalid workflow config", details=errors)

    config = _find_config(entity_type)
    created = config is None
    if created:
        config = WorkflowConfig(entity_type=entity_type, **_defaults())
        db.session.add(config)

    for field in (*_BOOL_FIELDS, "min_approvers"):
        if field in data:
            setattr(config, field, data[field])
    if "auto_approve_for_roles" in data:
        roles = data["auto_approve_for_roles"] or []
        config.auto_approve_for_roles = sorted({r.strip() for r in roles})

    db_commit_or_raise(resource="WorkflowConfig", field="entity_type", value=entity_type)

    logger.info(
        "Workflow config %s", "created" if created else "updated",
        extra={"entity_type": entity_type, "action": "config.upsert"},
    )
    return config.to_dict()
