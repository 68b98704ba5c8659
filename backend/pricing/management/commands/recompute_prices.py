"""
Django management command to recompute stored component and product prices
and report which draft projects follow them
"""
from django.core.management.base import BaseCommand
from django.db import transaction
from backend.catalog.models import Component, Product
from backend.core.cache_signals import suspend_cache_signals
from backend.core.cache_utils import invalidate_project_totals
from backend.pricing.cascade import CascadeResult, bom_line_items, on_product_changed, recompute_product_prices
from backend.pricing.cost_model import product_cost, product_sale_price, quantize_price
from backend.pricing.exceptions import RecomputeError
from backend.projects.models import ProjectProduct


class Command(BaseCommand):
    help = 'Recompute component sale prices and product cost/sale prices from current data'

    def add_arguments(self, parser):
        parser.add_argument(
            '--product-id',
            type=int,
            help='Recompute one product only',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what would change without writing',
        )

    def handle(self, *args, **options):
        product_id = options.get('product_id')
        dry_run = options.get('dry_run', False)

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("PRICE RECOMPUTE"))
        self.stdout.write("=" * 80)

        if product_id:
            products = Product.objects.filter(id=product_id)
            components = Component.objects.filter(used_in_products__product_id=product_id).distinct()
        else:
            products = Product.objects.all().order_by('id')
            components = Component.objects.all()

        if dry_run:
            self.report_component_drift(components)
            self.report_drift(products)
            return

        self.refresh_components(components)

        result = CascadeResult(origin='command:recompute_prices')
        # One invalidation pass at the end instead of one per product
        with suspend_cache_signals():
            for product in products:
                try:
                    with transaction.atomic():
                        before = product.sale_price
                        before_cost = product.cost_price
                        product = recompute_product_prices(product.pk)
                except Exception as e:
                    result.errors.append(RecomputeError('Product', product.pk, e))
                    self.stdout.write(self.style.ERROR(f"  Product {product.pk}: {e}"))
                    continue
                if product.sale_price != before or product.cost_price != before_cost:
                    result.recomputed_products.append(product.pk)
                    result.merge(on_product_changed(product.pk))
                    self.stdout.write(f"  {product.name}: {before} -> {product.sale_price}")

        invalidate_project_totals(
            ProjectProduct.objects.filter(product_id__in=result.recomputed_products)
            .values_list('project_id', flat=True)
        )

        self.stdout.write("")
        self.stdout.write(f"Products repriced: {len(result.recomputed_products)}")
        self.stdout.write(f"Draft projects affected: {len(result.affected_projects)}")
        if result.ok:
            self.stdout.write(self.style.SUCCESS("Done."))
        else:
            self.stdout.write(self.style.ERROR(f"Finished with {len(result.errors)} error(s)."))

    def refresh_components(self, components):
        changed = 0
        for component in components.order_by('id'):
            expected = component.compute_sale_price()
            if expected != component.sale_price:
                component.save(update_fields=['sale_price', 'updated_at'])
                changed += 1
        self.stdout.write(f"Component sale prices refreshed: {changed}")

    def report_component_drift(self, components):
        drift = 0
        for component in components.order_by('id'):
            expected = component.compute_sale_price()
            if expected != component.sale_price:
                drift += 1
                self.stdout.write(
                    self.style.WARNING(f"  {component.name}: stored sale {component.sale_price}, expected {expected}")
                )
        self.stdout.write(f"Components out of date: {drift}")

    def report_drift(self, products):
        drift = 0
        for product in products:
            items = bom_line_items(product.pk)
            expected_cost = quantize_price(product_cost(items, product.hourly_rate, product.hours))
            expected_sale = quantize_price(product_sale_price(items, product.hourly_rate, product.hours))
            stale = []
            if expected_cost != product.cost_price:
                stale.append(f"cost {product.cost_price} -> {expected_cost}")
            if expected_sale != product.sale_price:
                stale.append(f"sale {product.sale_price} -> {expected_sale}")
            if stale:
                drift += 1
                self.stdout.write(self.style.WARNING(f"  {product.name}: {', '.join(stale)}"))
        self.stdout.write(f"Products out of date: {drift}")
