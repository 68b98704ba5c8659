"""
Price-freeze policy for project lines.

A draft project prices its lines live from the product's current sale
price. Any other status prices them at frozen_unit_price, captured once
when the project leaves draft (or when a line is added to a project that
already left it) and never overwritten while the project stays locked.
"""
import logging
from decimal import Decimal

from django.db import DatabaseError, transaction

from backend.core.utils import create_audit_log
from backend.projects.models import Project, ProjectProduct
from .exceptions import NotFoundError, PriceFreezeError
from .signals import project_prices_frozen, project_prices_unfrozen

logger = logging.getLogger(__name__)


def should_freeze(status):
    """True for every status except draft"""
    return status != Project.STATUS_DRAFT


def effective_unit_price(link, product=None):
    """Frozen price when there is one, otherwise the product's live sale price"""
    if link.frozen_unit_price is not None:
        return link.frozen_unit_price
    product = product if product is not None else link.product
    if product.sale_price is None:
        return Decimal('0')
    return product.sale_price


def unit_price_for_new_line(project, product, previous_frozen_price=None):
    """
    frozen_unit_price for a line being (re)attached to a project.

    None on a draft project. On a locked project, an existing freeze is kept,
    otherwise the product's current sale price is captured.
    """
    if not should_freeze(project.status):
        return None
    if previous_frozen_price is not None:
        return previous_frozen_price
    return product.sale_price


def _get_project(project_id):
    try:
        return Project.objects.get(pk=project_id)
    except Project.DoesNotExist:
        raise NotFoundError('Project', project_id)


def freeze_links_for_project(project_id, user=None):
    """
    Freeze every unfrozen line of the project at its product's current sale price.

    Lines that already carry a frozen price are left untouched, so calling
    this again is a no-op. Returns the number of lines frozen. Any write
    failure raises PriceFreezeError and rolls back every line of this call.
    """
    project = _get_project(project_id)
    frozen = {}
    try:
        with transaction.atomic():
            links = (
                ProjectProduct.objects.select_for_update(of=('self',))
                .filter(project_id=project_id, frozen_unit_price__isnull=True)
                .select_related('product')
            )
            for link in links:
                link.frozen_unit_price = effective_unit_price(link)
                link.save(update_fields=['frozen_unit_price'])
                frozen[link.product_id] = link.frozen_unit_price
    except DatabaseError as e:
        logger.error(f"Freezing prices of project {project_id} failed: {e}")
        raise PriceFreezeError(f"Could not freeze prices of project {project_id}: {e}") from e

    if frozen:
        logger.info(f"Project {project_id}: froze {len(frozen)} line price(s)")
        create_audit_log(
            action='price_freeze',
            instance=project,
            user=user,
            changes={'frozen_unit_prices': {str(pid): price for pid, price in frozen.items()}},
        )
    project_prices_frozen.send(sender=Project, project_id=project_id, frozen_count=len(frozen))
    return len(frozen)


def unfreeze_links_for_project(project_id, user=None):
    """
    Release every frozen line price of the project so it follows live prices again.

    Only meant for a project going back to draft. Returns the number of lines released.
    """
    project = _get_project(project_id)
    try:
        with transaction.atomic():
            released = (
                ProjectProduct.objects.filter(project_id=project_id, frozen_unit_price__isnull=False)
                .update(frozen_unit_price=None)
            )
    except DatabaseError as e:
        logger.error(f"Unfreezing prices of project {project_id} failed: {e}")
        raise PriceFreezeError(f"Could not unfreeze prices of project {project_id}: {e}") from e

    if released:
        logger.info(f"Project {project_id}: released {released} frozen line price(s)")
        create_audit_log(
            action='price_unfreeze',
            instance=project,
            user=user,
            changes={'released_lines': released},
        )
    project_prices_unfrozen.send(sender=Project, project_id=project_id, unfrozen_count=released)
    return released
