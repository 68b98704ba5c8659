"""Utility functions for audit logging"""
import logging
from decimal import Decimal

from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def jsonable_changes(changes):
    """Make a changes dict JSON-safe (Decimals are stored as strings, never floats)"""
    if not changes:
        return {}
    result = {}
    for key, value in changes.items():
        if isinstance(value, Decimal):
            result[key] = str(value)
        elif isinstance(value, dict):
            result[key] = jsonable_changes(value)
        elif isinstance(value, (list, tuple)):
            result[key] = [str(v) if isinstance(v, Decimal) else v for v in value]
        else:
            result[key] = value
    return result


def create_audit_log(action=None, instance=None, request=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        action: Action type (create, update, price_change, price_freeze, ...)
        instance: Model instance acted upon; fills model_name, object_id,
                  object_name and object_reference when they are not given
        request: Django request object (for user and IP) - optional
        model_name: Name of the model being acted upon
        object_id: ID of the object
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)

    Never raises: a failing audit write must not fail the operation being audited.
    """
    try:
        if instance is not None:
            model_name = model_name or instance.__class__.__name__
            object_id = object_id if object_id is not None else instance.pk
            object_name = object_name or str(instance)
            object_reference = object_reference or getattr(instance, 'reference', None)

        audit_user = user
        if audit_user is None and request is not None and hasattr(request, 'user'):
            audit_user = request.user

        if not action or not model_name or object_id is None:
            logger.warning(
                f"Audit log creation skipped: missing required fields "
                f"(action={action}, model_name={model_name}, object_id={object_id})"
            )
            return None

        # Savepoint so a failed insert cannot poison an enclosing transaction
        with transaction.atomic():
            return AuditLog.objects.create(
                user=audit_user if audit_user and audit_user.is_authenticated else None,
                action=action,
                model_name=model_name,
                object_id=str(object_id),
                object_name=(object_name or '')[:255] or None,
                object_reference=object_reference,
                changes=jsonable_changes(changes),
                ip_address=get_client_ip(request) if request else None,
            )
    except Exception as e:
        logger.error(f"Failed to create audit log: {str(e)}")
        return None
