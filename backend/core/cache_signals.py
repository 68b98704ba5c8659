"""
Cache invalidation signals
Drop cached project totals when prices or project lines change
"""
from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from backend.core.cache_utils import invalidate_project_totals
from backend.pricing.signals import product_price_changed, project_prices_frozen, project_prices_unfrozen

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_now_and_on_commit(project_ids):
    """
    Invalidate immediately for readers in this transaction, and again after
    commit so a concurrent reader cannot leave pre-commit figures cached.
    """
    project_ids = list(project_ids)
    invalidate_project_totals(project_ids)
    transaction.on_commit(lambda: invalidate_project_totals(project_ids))


def projects_using_product(product_id):
    """Every project with a line on the product, draft or not (cost totals are always live)"""
    from backend.projects.models import ProjectProduct
    return list(
        ProjectProduct.objects.filter(product_id=product_id)
        .values_list('project_id', flat=True).distinct()
    )


# --- Price event handlers ---

@receiver(product_price_changed)
def invalidate_totals_on_product_price(sender, product_id, **kwargs):
    """A product was repriced: every project listing it shows new figures"""
    if is_suspended():
        return
    try:
        invalidate_now_and_on_commit(projects_using_product(product_id))
    except Exception as e:
        logger.warning(f"Error in invalidate_totals_on_product_price signal: {e}")


@receiver([project_prices_frozen, project_prices_unfrozen])
def invalidate_totals_on_freeze(sender, project_id, **kwargs):
    if is_suspended():
        return
    invalidate_now_and_on_commit([project_id])


# --- Model change handlers ---

@receiver([post_save, post_delete])
def invalidate_totals_on_project_change(sender, instance, **kwargs):
    """Invalidate project totals when a project or one of its lines changes"""
    if is_suspended():
        return

    model_name = sender.__name__

    if model_name in ['Project', 'ProjectProduct']:
        try:
            from backend.projects.models import Project, ProjectProduct

            if isinstance(instance, Project):
                project_id = instance.pk
            elif isinstance(instance, ProjectProduct):
                project_id = instance.project_id
            else:
                return

            invalidate_now_and_on_commit([project_id])
        except Exception as e:
            logger.warning(f"Error in invalidate_totals_on_project_change signal: {e}")


@receiver([post_save, post_delete])
def invalidate_totals_on_product_change(sender, instance, **kwargs):
    """A product edited or deleted directly (labor, archive flag, hard delete)"""
    if is_suspended():
        return

    if sender.__name__ != 'Product':
        return
    try:
        from backend.catalog.models import Product
        if isinstance(instance, Product):
            project_ids = projects_using_product(instance.pk) if instance.pk else []
            invalidate_now_and_on_commit(project_ids)
    except Exception as e:
        logger.warning(f"Error in invalidate_totals_on_product_change signal: {e}")
