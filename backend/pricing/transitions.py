"""
Project status transitions and their effect on line prices.

Any status may follow any other. Leaving draft freezes line prices,
returning to draft releases them, moving between two non-draft statuses
changes nothing. The price action runs inside the same transaction as the
project save, so a failed freeze means the status change is not saved.
"""
import logging

from django.db import transaction

from backend.core.utils import create_audit_log
from backend.projects.models import Project
from .exceptions import ValidationError
from .freeze import freeze_links_for_project, should_freeze, unfreeze_links_for_project

logger = logging.getLogger(__name__)

VALID_STATUSES = {value for value, _ in Project.STATUS_CHOICES}

FREEZE = 'freeze'
UNFREEZE = 'unfreeze'


def validate_status(status):
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Unknown project status {status!r}; expected one of {sorted(VALID_STATUSES)}",
            field='status',
        )
    return status


def price_action_for(old_status, new_status):
    """FREEZE, UNFREEZE or None for a transition"""
    validate_status(old_status)
    validate_status(new_status)
    was_locked = should_freeze(old_status)
    now_locked = should_freeze(new_status)
    if not was_locked and now_locked:
        return FREEZE
    if was_locked and not now_locked:
        return UNFREEZE
    return None


def on_project_status_changed(project_id, old_status, new_status, user=None):
    """Apply the price action of a status transition. Returns the action taken."""
    action = price_action_for(old_status, new_status)
    if action == FREEZE:
        freeze_links_for_project(project_id, user=user)
    elif action == UNFREEZE:
        unfreeze_links_for_project(project_id, user=user)
    if old_status != new_status:
        logger.info(f"Project {project_id}: {old_status} -> {new_status} (prices: {action or 'unchanged'})")
    return action


def change_project_status(project, new_status, user=None):
    """
    Save a new status on the project together with its price action.

    Everything happens in one transaction: if freezing or unfreezing fails
    the project keeps its old status.
    """
    validate_status(new_status)
    old_status = project.status
    try:
        with transaction.atomic():
            project.status = new_status
            project.save(update_fields=['status', 'updated_at'])
            action = on_project_status_changed(project.pk, old_status, new_status, user=user)
            if old_status != new_status:
                create_audit_log(
                    action='status_change',
                    instance=project,
                    user=user,
                    changes={'status': {'old': old_status, 'new': new_status}},
                )
    except Exception:
        project.status = old_status
        raise
    return action
