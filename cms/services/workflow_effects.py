"""
Approved-change extension point.

When a workflow reaches ``approved`` (reviewer approval or auto-approval at
submit), the engine hands the proposed change to a content-materialization
collaborator.  The collaborator is registered per application:

    from cms.services.workflow_effects import register_approved_change_handler

    def materialize(change):
        ...
        return {"id": new_id}

    register_approved_change_handler(app, materialize)

The handler runs inside the approving transaction.  Whatever it returns is
exposed as ``entity`` in the approve/submit response; raising rolls the
approval back.  Without a registered handler the effect is a no-op.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from flask import Flask, current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "approved_change_handler"


@dataclass(frozen=True)
class ApprovedChange:
    """The change a workflow carried, as handed to the materializer."""
    workflow_id: str
    entity_type: str
    entity_id: str | None
    operation: str
    payload: dict = field(default_factory=dict)


ApprovedChangeHandler = Callable[[ApprovedChange], dict[str, Any] | None]


def noop_handler(change: ApprovedChange) -> None:
    """Default handler: nothing is materialized."""
    return None


def register_approved_change_handler(app: Flask, handler: ApprovedChangeHandler) -> None:
    app.extensions[EXTENSION_KEY] = handler
    logger.info("Approved-change handler registered: %s", getattr(handler, "__name__", handler))


def get_approved_change_handler() -> ApprovedChangeHandler:
    return current_app.extensions.get(EXTENSION_KEY, noop_handler)


def apply_approved_change(workflow) -> dict | None:
    """Invoke the registered handler for an approved workflow."""
    change = ApprovedChange(
        workflow_id=workflow.id,
        entity_type=workflow.entity_type,
        entity_id=workflow.entity_id,
        operation=workflow.operation,
        payload=dict(workflow.payload or {}),
    )
    return get_approved_change_handler()(change)
