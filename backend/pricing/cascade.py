"""
Price cascade: component -> products -> draft projects.

When a component's purchase price or margin changes, every product whose
bill of materials uses it gets its cost and sale price recomputed and
stored. Draft projects price their lines from the live product price on
read, so they need no write; projects past draft keep their frozen prices
and are never touched here.

The cascade is best-effort: each product is recomputed in its own
transaction, and a product that fails (deleted concurrently, bad data) is
logged and reported in the CascadeResult while the others carry on.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import List

from django.conf import settings
from django.db import connection, transaction
from django.utils import timezone

from backend.catalog.models import Component, Product, ProductComponent
from backend.core.utils import create_audit_log
from backend.projects.models import Project, ProjectProduct
from .cost_model import LineItem, product_cost, product_sale_price, quantize_price
from .exceptions import NotFoundError, RecomputeError
from .signals import component_price_changed, product_price_changed

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    """Outcome of one cascade run, returned to whoever awaits it"""
    origin: str
    recomputed_products: List[int] = field(default_factory=list)
    affected_projects: List[int] = field(default_factory=list)
    errors: List[RecomputeError] = field(default_factory=list)

    @property
    def ok(self):
        return not self.errors

    def merge(self, other):
        for project_id in other.affected_projects:
            if project_id not in self.affected_projects:
                self.affected_projects.append(project_id)
        self.errors.extend(other.errors)

    def as_dict(self):
        return {
            'origin': self.origin,
            'ok': self.ok,
            'recomputed_products': self.recomputed_products,
            'affected_projects': self.affected_projects,
            'errors': [error.as_dict() for error in self.errors],
        }


def bom_line_items(product_id):
    """Line items built from the components' current purchase price and margin"""
    lines = ProductComponent.objects.filter(product_id=product_id).select_related('component')
    return [
        LineItem(
            purchase_price=line.component.purchase_price,
            margin_percent=line.component.margin_percent,
            quantity=line.quantity,
        )
        for line in lines
    ]


def recompute_product_prices(product_id, user=None):
    """
    Recompute and store a product's cost and sale price.

    Raises NotFoundError if the product is gone. Returns the product with
    the stored values. Running it twice without a data change writes nothing
    the second time.
    """
    try:
        product = Product.objects.get(pk=product_id)
    except Product.DoesNotExist:
        raise NotFoundError('Product', product_id)

    items = bom_line_items(product_id)
    cost = quantize_price(product_cost(items, product.hourly_rate, product.hours))
    sale = quantize_price(product_sale_price(items, product.hourly_rate, product.hours))

    if cost == product.cost_price and sale == product.sale_price:
        return product

    old_cost, old_sale = product.cost_price, product.sale_price
    updated = Product.objects.filter(pk=product_id).update(
        cost_price=cost, sale_price=sale, updated_at=timezone.now()
    )
    if not updated:
        raise NotFoundError('Product', product_id)
    product.cost_price, product.sale_price = cost, sale

    logger.info(f"Product {product_id} repriced: sale {old_sale} -> {sale}, cost {old_cost} -> {cost}")
    create_audit_log(
        action='price_change',
        instance=product,
        user=user,
        changes={
            'cost_price': {'old': old_cost, 'new': cost},
            'sale_price': {'old': old_sale, 'new': sale},
        },
    )
    return product


def on_product_changed(product_id):
    """
    Report the draft projects that follow this product's price.

    Nothing is written: draft lines read the live product price. Non-draft
    projects are deliberately left out, their prices are frozen.
    """
    result = CascadeResult(origin=f'product:{product_id}')
    result.affected_projects = list(
        ProjectProduct.objects.filter(
            product_id=product_id,
            frozen_unit_price__isnull=True,
            project__status=Project.STATUS_DRAFT,
        ).values_list('project_id', flat=True).distinct()
    )
    product_price_changed.send(
        sender=Product, product_id=product_id, draft_project_ids=result.affected_projects
    )
    return result


def on_component_changed(component_id, user=None):
    """Recompute every product using the component, then notify their draft projects"""
    result = CascadeResult(origin=f'component:{component_id}')
    product_ids = list(
        ProductComponent.objects.filter(component_id=component_id)
        .values_list('product_id', flat=True).distinct()
    )
    if not product_ids:
        logger.debug(f"Component {component_id} is not used by any product")
        return result
    return _recompute_products(product_ids, result, user=user)


def on_products_orphaned(product_ids, user=None):
    """Recompute products after a component they used was deleted"""
    result = CascadeResult(origin='component:deleted')
    return _recompute_products(product_ids, result, user=user)


def _recompute_products(product_ids, result, user=None):
    for product_id in product_ids:
        try:
            with transaction.atomic():
                recompute_product_prices(product_id, user=user)
        except NotFoundError as e:
            logger.warning(f"Cascade {result.origin}: product {product_id} vanished, skipping")
            result.errors.append(RecomputeError('Product', product_id, e))
            continue
        except Exception as e:
            logger.exception(f"Cascade {result.origin}: failed to recompute product {product_id}")
            result.errors.append(RecomputeError('Product', product_id, e))
            continue
        result.recomputed_products.append(product_id)
        result.merge(on_product_changed(product_id))

    if result.errors:
        logger.error(
            f"Cascade {result.origin} finished with {len(result.errors)} error(s): "
            + "; ".join(str(error) for error in result.errors)
        )
    else:
        logger.info(
            f"Cascade {result.origin}: {len(result.recomputed_products)} product(s) recomputed, "
            f"{len(result.affected_projects)} draft project(s) affected"
        )
    return result


# --- Entry points for the edit flows ---

def refresh_component_sale_price(component_id, user=None):
    """Store a component's sale price from its current purchase price and margin"""
    try:
        component = Component.objects.get(pk=component_id)
    except Component.DoesNotExist:
        raise NotFoundError('Component', component_id)
    old_sale = component.sale_price
    component.save(update_fields=['sale_price', 'updated_at'])
    if component.sale_price != old_sale:
        notify_component_price_changed(component, old_sale, user=user)
    return component


def notify_component_price_changed(component, old_sale_price, user=None):
    create_audit_log(
        action='price_change',
        instance=component,
        user=user,
        changes={'sale_price': {'old': old_sale_price, 'new': component.sale_price}},
    )
    component_price_changed.send(
        sender=Component,
        component_id=component.pk,
        old_sale_price=old_sale_price,
        new_sale_price=component.sale_price,
    )


def recompute_component(component_id, user=None):
    """Refresh a component's stored sale price and dispatch the cascade after commit"""
    component = refresh_component_sale_price(component_id, user=user)
    dispatch_component_cascade(component_id, user=user)
    return component


def recompute_product(product_id, user=None):
    """Recompute a product's prices now and dispatch the project cascade after commit"""
    product = recompute_product_prices(product_id, user=user)
    dispatch_product_cascade(product_id)
    return product


def dispatch_component_cascade(component_id, user=None):
    transaction.on_commit(lambda: run_detached(on_component_changed, component_id, user=user))


def dispatch_product_cascade(product_id):
    transaction.on_commit(lambda: run_detached(on_product_changed, product_id))


def dispatch_orphaned_products(product_ids, user=None):
    if product_ids:
        transaction.on_commit(lambda: run_detached(on_products_orphaned, list(product_ids), user=user))


def run_detached(func, *args, **kwargs):
    """
    Run a cascade without blocking the caller.

    With PRICING_CASCADE_ASYNC the work goes to a daemon thread; otherwise it
    runs inline. Either way failures end up in the log, not in the caller.
    """
    def task():
        try:
            result = func(*args, **kwargs)
            if result is not None and not result.ok:
                logger.error(f"Background cascade {result.origin} reported errors: {result.as_dict()['errors']}")
        except Exception:
            logger.exception(f"Background cascade {func.__name__}{args} failed")

    if not getattr(settings, 'PRICING_CASCADE_ASYNC', True):
        task()
        return None

    def threaded_task():
        try:
            task()
        finally:
            # Thread-owned connection, not reused by the request thread
            connection.close()

    thread = threading.Thread(target=threaded_task, name=f'cascade-{func.__name__}')
    thread.daemon = True
    thread.start()
    return thread
