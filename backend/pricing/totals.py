"""
Read-side project figures: totals, quote lines and component requirements.

Totals are never stored. Sale totals use each line's effective unit price
(frozen or live); cost totals always use the products' current cost, even
on locked projects, so their margin can still move when component costs
change after freezing.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.conf import settings

from backend.catalog.models import ProductComponent
from backend.core.cache_utils import cache_project_totals, get_cached_project_totals
from backend.projects.models import Project, ProjectProduct
from .cost_model import DISPLAY_PRICE_PLACES, ZERO, margin, quantize_price
from .exceptions import NotFoundError
from .freeze import effective_unit_price

logger = logging.getLogger(__name__)

UNCATEGORIZED = 'Uncategorized'


def money(value):
    """Display form of an amount: string with two decimals"""
    if value is None:
        return None
    return str(quantize_price(value, places=DISPLAY_PRICE_PLACES))


@dataclass
class ProjectTotals:
    project_id: int
    status: str
    total_sale: Decimal
    total_cost: Decimal
    margin_amount: Decimal
    margin_percent: Optional[Decimal]
    product_count: int
    total_quantity: int
    frozen_lines: int

    def as_dict(self):
        return {
            'project_id': self.project_id,
            'status': self.status,
            'total_sale': money(self.total_sale),
            'total_cost': money(self.total_cost),
            'margin_amount': money(self.margin_amount),
            'margin_percent': money(self.margin_percent),
            'product_count': self.product_count,
            'total_quantity': self.total_quantity,
            'frozen_lines': self.frozen_lines,
        }


@dataclass
class QuoteLine:
    product_id: int
    reference: Optional[str]
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    is_frozen: bool

    def as_dict(self):
        return {
            'product_id': self.product_id,
            'reference': self.reference,
            'name': self.name,
            'quantity': self.quantity,
            'unit_price': money(self.unit_price),
            'line_total': money(self.line_total),
            'is_frozen': self.is_frozen,
        }


@dataclass
class ComponentRequirement:
    component_id: int
    reference: Optional[str]
    name: str
    quantity: int


@dataclass
class RequirementGroup:
    category: str
    components: List[ComponentRequirement] = field(default_factory=list)

    def as_dict(self):
        return {
            'category': self.category,
            'components': [
                {
                    'component_id': c.component_id,
                    'reference': c.reference,
                    'name': c.name,
                    'quantity': c.quantity,
                }
                for c in self.components
            ],
        }


def _get_project(project_id):
    try:
        return Project.objects.get(pk=project_id)
    except Project.DoesNotExist:
        raise NotFoundError('Project', project_id)


def _project_links(project_id):
    return ProjectProduct.objects.filter(project_id=project_id).select_related('product').order_by('id')


def project_totals(project_id, use_cache=True):
    """Sale/cost totals of a project. Cached until a price event invalidates them."""
    cache_key = None
    if use_cache:
        cached, cache_key = get_cached_project_totals(project_id)
        if cached is not None:
            return cached

    project = _get_project(project_id)
    total_sale = ZERO
    total_cost = ZERO
    total_quantity = 0
    frozen_lines = 0
    links = list(_project_links(project_id))
    for link in links:
        total_sale += effective_unit_price(link, link.product) * link.quantity
        total_cost += link.product.cost_price * link.quantity
        total_quantity += link.quantity
        if link.is_frozen:
            frozen_lines += 1

    result = margin(total_cost, total_sale)
    totals = ProjectTotals(
        project_id=project.pk,
        status=project.status,
        total_sale=total_sale,
        total_cost=total_cost,
        margin_amount=result.amount,
        margin_percent=result.percent,
        product_count=len(links),
        total_quantity=total_quantity,
        frozen_lines=frozen_lines,
    )
    if use_cache:
        cache_project_totals(cache_key, totals, ttl=getattr(settings, 'PROJECT_TOTALS_CACHE_TTL', None))
    return totals


def quote_lines(project_id):
    """Priced lines of a project and their grand total"""
    _get_project(project_id)
    lines = []
    total = ZERO
    for link in _project_links(project_id):
        unit_price = effective_unit_price(link, link.product)
        line_total = unit_price * link.quantity
        total += line_total
        lines.append(QuoteLine(
            product_id=link.product_id,
            reference=link.product.reference,
            name=link.product.name,
            quantity=link.quantity,
            unit_price=unit_price,
            line_total=line_total,
            is_frozen=link.is_frozen,
        ))
    return lines, total


def component_requirements(project_id, category_ids=None):
    """
    Components needed to build the whole project, grouped by component category.

    Quantity per component is the sum over the project's lines of
    line quantity x BOM quantity. With category_ids, only components in
    those categories are kept (uncategorized ones are dropped).
    """
    _get_project(project_id)
    category_ids = {int(c) for c in category_ids} if category_ids else None

    line_quantities = dict(
        ProjectProduct.objects.filter(project_id=project_id).values_list('product_id', 'quantity')
    )
    bom_lines = (
        ProductComponent.objects.filter(product_id__in=line_quantities.keys())
        .select_related('component', 'component__category')
    )

    groups = {}
    for bom in bom_lines:
        component = bom.component
        if category_ids is not None and component.category_id not in category_ids:
            continue
        category_name = component.category.name if component.category else UNCATEGORIZED
        group = groups.setdefault(category_name, {})
        needed = line_quantities[bom.product_id] * bom.quantity
        if component.pk in group:
            group[component.pk].quantity += needed
        else:
            group[component.pk] = ComponentRequirement(
                component_id=component.pk,
                reference=component.reference,
                name=component.name,
                quantity=needed,
            )

    return [
        RequirementGroup(
            category=name,
            components=sorted(groups[name].values(), key=lambda c: (c.name, c.component_id)),
        )
        for name in sorted(groups)
    ]
