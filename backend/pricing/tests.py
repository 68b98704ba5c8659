"""
Test suite for the pricing core
Tests: cost model arithmetic, component -> product -> project cascade,
price freezing on status transitions, project totals and exports
"""
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status

from backend.catalog.models import Component, Product, ProductComponent
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.projects.models import Project, ProjectProduct
from backend.pricing import cost_model
from backend.pricing.cascade import (
    CascadeResult, dispatch_component_cascade, on_component_changed, on_product_changed, recompute_product,
    recompute_product_prices, run_detached
)
from backend.pricing.cost_model import LineItem
from backend.pricing.exceptions import NotFoundError, PriceFreezeError, RecomputeError, ValidationError
from backend.pricing.freeze import freeze_links_for_project, unfreeze_links_for_project
from backend.pricing.totals import component_requirements, project_totals, quote_lines, UNCATEGORIZED
from backend.pricing.transitions import FREEZE, UNFREEZE, change_project_status, price_action_for


class CostModelTests(SimpleTestCase):
    """Pure price arithmetic, no database"""

    def test_component_sale_price(self):
        self.assertEqual(cost_model.component_sale_price(Decimal('10'), Decimal('20')), Decimal('12'))

    def test_component_sale_price_accepts_negative_margin(self):
        self.assertEqual(cost_model.component_sale_price(Decimal('10'), Decimal('-10')), Decimal('9'))

    def test_component_sale_price_rejects_negative_purchase_price(self):
        with self.assertRaises(ValidationError) as ctx:
            cost_model.component_sale_price(Decimal('-1'), Decimal('20'))
        self.assertEqual(ctx.exception.field, 'purchase_price')

    def test_component_sale_price_is_stable_on_repeated_calls(self):
        first = cost_model.component_sale_price(Decimal('0.10'), Decimal('33.33'))
        for _ in range(100):
            self.assertEqual(cost_model.component_sale_price(Decimal('0.10'), Decimal('33.33')), first)

    def test_float_input_keeps_its_decimal_value(self):
        self.assertEqual(cost_model.component_sale_price(0.1, 0), Decimal('0.1'))

    def test_missing_value_is_rejected(self):
        with self.assertRaises(ValidationError):
            cost_model.component_sale_price(None, Decimal('20'))
        with self.assertRaises(ValidationError):
            cost_model.labor_cost('', Decimal('1'))

    def test_product_cost_and_sale_price(self):
        items = [LineItem(purchase_price=Decimal('10'), margin_percent=Decimal('20'), quantity=2)]
        self.assertEqual(cost_model.product_cost(items, Decimal('50'), Decimal('1')), Decimal('70'))
        self.assertEqual(cost_model.product_sale_price(items, Decimal('50'), Decimal('1')), Decimal('74'))

    def test_product_without_components_is_labor_only(self):
        self.assertEqual(cost_model.product_cost([], Decimal('45'), Decimal('2.5')), Decimal('112.5'))
        self.assertEqual(cost_model.product_sale_price([], Decimal('45'), Decimal('2.5')), Decimal('112.5'))

    def test_sale_price_is_at_least_cost_for_non_negative_margins(self):
        items = [
            LineItem(purchase_price=Decimal('3.33'), margin_percent=Decimal('0'), quantity=3),
            LineItem(purchase_price=Decimal('7.10'), margin_percent=Decimal('12.5'), quantity=1),
        ]
        cost = cost_model.product_cost(items, Decimal('20'), Decimal('0.75'))
        sale = cost_model.product_sale_price(items, Decimal('20'), Decimal('0.75'))
        self.assertGreaterEqual(sale, cost)

    def test_zero_quantity_line_is_rejected(self):
        items = [LineItem(purchase_price=Decimal('10'), margin_percent=Decimal('20'), quantity=0)]
        with self.assertRaises(ValidationError):
            cost_model.product_cost(items, Decimal('0'), Decimal('0'))

    def test_negative_labor_is_rejected(self):
        with self.assertRaises(ValidationError):
            cost_model.labor_cost(Decimal('-5'), Decimal('1'))

    def test_margin(self):
        result = cost_model.margin(Decimal('70'), Decimal('74'))
        self.assertEqual(result.amount, Decimal('4'))
        self.assertEqual(cost_model.quantize_price(result.percent, places=2), Decimal('5.71'))

    def test_margin_percent_is_none_when_cost_is_zero(self):
        result = cost_model.margin(Decimal('0'), Decimal('10'))
        self.assertEqual(result.amount, Decimal('10'))
        self.assertIsNone(result.percent)
        self.assertIsNone(cost_model.margin(0, 0).percent)

    def test_quantize_price_rounds_half_up(self):
        self.assertEqual(cost_model.quantize_price(Decimal('1.0000005')), Decimal('1.000001'))
        self.assertEqual(cost_model.quantize_price(Decimal('2.345'), places=2), Decimal('2.35'))


class StatusTransitionTests(SimpleTestCase):
    """Which transitions freeze or release prices"""

    def test_leaving_draft_freezes(self):
        for status_value in ['in_progress', 'done', 'cancelled']:
            self.assertEqual(price_action_for('draft', status_value), FREEZE)

    def test_returning_to_draft_unfreezes(self):
        self.assertEqual(price_action_for('done', 'draft'), UNFREEZE)

    def test_moves_between_locked_statuses_do_nothing(self):
        self.assertIsNone(price_action_for('in_progress', 'done'))
        self.assertIsNone(price_action_for('done', 'cancelled'))
        self.assertIsNone(price_action_for('draft', 'draft'))

    def test_unknown_status_is_rejected(self):
        with self.assertRaises(ValidationError):
            price_action_for('draft', 'archived')


@override_settings(PRICING_CASCADE_ASYNC=False)
class PriceCascadeScenarioTests(TestCase):
    """
    A: purchase 10, margin 20 -> sale 12
    P: 2 x A + 1h at 50/h -> cost 70, sale 74
    J: draft project with 3 x P -> total sale 222
    """

    def setUp(self):
        cache.clear()
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.product = TestDataFactory.create_product(
            components=[(self.component, 2)], hourly_rate='50', hours='1'
        )
        self.project = TestDataFactory.create_project()
        self.link = TestDataFactory.add_product_to_project(self.project, self.product, quantity=3)

    def change_margin(self, margin_percent):
        self.component.margin_percent = Decimal(margin_percent)
        with self.captureOnCommitCallbacks(execute=True):
            self.component.save()
            dispatch_component_cascade(self.component.pk)

    def test_initial_prices(self):
        self.assertEqual(self.component.sale_price, Decimal('12'))
        self.assertEqual(self.product.cost_price, Decimal('70'))
        self.assertEqual(self.product.sale_price, Decimal('74'))
        self.assertEqual(project_totals(self.project.pk).total_sale, Decimal('222'))

    def test_draft_project_follows_component_change(self):
        project_totals(self.project.pk)  # cached at 222

        self.change_margin('50')

        self.component.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.component.sale_price, Decimal('15'))
        self.assertEqual(self.product.sale_price, Decimal('80'))
        self.assertEqual(self.product.cost_price, Decimal('70'))
        totals = project_totals(self.project.pk)
        self.assertEqual(totals.total_sale, Decimal('240'))
        self.assertEqual(totals.total_cost, Decimal('210'))

    def test_leaving_draft_freezes_then_product_edits_are_ignored(self):
        self.change_margin('50')

        change_project_status(self.project, Project.STATUS_IN_PROGRESS)
        self.link.refresh_from_db()
        self.assertEqual(self.link.frozen_unit_price, Decimal('80'))

        self.product.refresh_from_db()
        self.product.hourly_rate = Decimal('70')
        with self.captureOnCommitCallbacks(execute=True):
            self.product.save()
            recompute_product(self.product.pk)

        self.product.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('100'))
        self.link.refresh_from_db()
        self.assertEqual(self.link.frozen_unit_price, Decimal('80'))
        self.assertEqual(project_totals(self.project.pk).total_sale, Decimal('240'))

    def test_locked_project_keeps_frozen_price_through_component_cascade(self):
        change_project_status(self.project, Project.STATUS_IN_PROGRESS)

        self.change_margin('100')

        self.product.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('90'))
        self.link.refresh_from_db()
        self.assertEqual(self.link.frozen_unit_price, Decimal('74'))
        self.assertEqual(project_totals(self.project.pk).total_sale, Decimal('222'))

    def test_cost_totals_of_locked_project_stay_live(self):
        change_project_status(self.project, Project.STATUS_DONE)
        self.component.purchase_price = Decimal('20')
        with self.captureOnCommitCallbacks(execute=True):
            self.component.save()
            dispatch_component_cascade(self.component.pk)

        totals = project_totals(self.project.pk)
        self.assertEqual(totals.total_sale, Decimal('222'))
        self.assertEqual(totals.total_cost, Decimal('270'))  # 3 x (2 x 20 + 50)
        self.assertEqual(totals.margin_amount, Decimal('-48'))

    def test_cascade_result_lists_only_draft_projects(self):
        locked = TestDataFactory.create_project(status=Project.STATUS_IN_PROGRESS)
        TestDataFactory.add_product_to_project(locked, self.product, quantity=1, frozen_unit_price=Decimal('74'))
        self.component.margin_percent = Decimal('50')
        self.component.save()

        result = on_component_changed(self.component.pk)

        self.assertTrue(result.ok)
        self.assertEqual(result.recomputed_products, [self.product.pk])
        self.assertEqual(result.affected_projects, [self.project.pk])

    def test_component_used_by_no_product(self):
        lonely = TestDataFactory.create_component()
        result = on_component_changed(lonely.pk)
        self.assertTrue(result.ok)
        self.assertEqual(result.recomputed_products, [])

    def test_price_change_is_audited(self):
        self.change_margin('50')
        logs = AuditLog.objects.filter(action='price_change', model_name='Product', object_id=str(self.product.pk))
        self.assertEqual(logs.count(), 2)  # creation pricing, then the cascade
        self.assertEqual(logs.order_by('-id').first().changes['sale_price'], {'old': '74.000000', 'new': '80.000000'})


@override_settings(PRICING_CASCADE_ASYNC=False)
class CascadeRobustnessTests(TestCase):
    """Failures inside a cascade are collected, never raised"""

    def setUp(self):
        cache.clear()
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.first = TestDataFactory.create_product(components=[(self.component, 1)])
        self.second = TestDataFactory.create_product(components=[(self.component, 3)])

    def test_cascade_continues_past_a_failing_product(self):
        def flaky(product_id, user=None):
            if product_id == self.first.pk:
                raise RuntimeError('boom')
            return recompute_product_prices(product_id, user=user)

        self.component.margin_percent = Decimal('50')
        self.component.save()
        with patch('backend.pricing.cascade.recompute_product_prices', side_effect=flaky):
            with self.assertLogs('backend.pricing.cascade', level='ERROR'):
                result = on_component_changed(self.component.pk)

        self.assertFalse(result.ok)
        self.assertEqual(result.recomputed_products, [self.second.pk])
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].entity_id, self.first.pk)
        self.assertEqual(result.as_dict()['errors'][0]['id'], self.first.pk)

        self.second.refresh_from_db()
        self.assertEqual(self.second.sale_price, Decimal('45'))
        self.first.refresh_from_db()
        self.assertEqual(self.first.sale_price, Decimal('12'))

    def test_recompute_of_missing_product_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            recompute_product_prices(999999)

    def test_recompute_is_idempotent(self):
        recompute_product_prices(self.first.pk)
        before = AuditLog.objects.filter(action='price_change').count()
        recompute_product_prices(self.first.pk)
        self.assertEqual(AuditLog.objects.filter(action='price_change').count(), before)

    def test_recompute_reads_current_component_prices_not_stored_sale_price(self):
        # A stale stored component sale price must not leak into the product
        Component.objects.filter(pk=self.component.pk).update(sale_price=Decimal('999'))
        Product.objects.filter(pk=self.first.pk).update(sale_price=Decimal('0'))
        product = recompute_product_prices(self.first.pk)
        self.assertEqual(product.sale_price, Decimal('12'))

    def test_on_product_changed_reports_draft_projects(self):
        draft = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(draft, self.first, quantity=2)
        result = on_product_changed(self.first.pk)
        self.assertEqual(result.affected_projects, [draft.pk])

    def test_deleted_component_reprices_its_products(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user())
        other = TestDataFactory.create_component(purchase_price='5', margin_percent='0')
        ProductComponent.objects.create(product=self.first, component=other, quantity=1)
        recompute_product_prices(self.first.pk)

        with self.captureOnCommitCallbacks(execute=True):
            response = client.delete(f'/api/v1/components/{other.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        self.first.refresh_from_db()
        self.assertEqual(self.first.cost_price, Decimal('10'))
        self.assertEqual(self.first.sale_price, Decimal('12'))


def failing_cascade():
    return CascadeResult(origin='component:1', errors=[RecomputeError('Product', 7, 'locked row')])


def crashing_cascade():
    raise RuntimeError('connection lost')


def clean_cascade():
    return CascadeResult(origin='component:1', recomputed_products=[7])


class RunDetachedTests(SimpleTestCase):
    """Background cascade runs report failures through the log"""

    @override_settings(PRICING_CASCADE_ASYNC=False)
    def test_inline_run_logs_reported_errors(self):
        with self.assertLogs('backend.pricing.cascade', level='ERROR') as logs:
            self.assertIsNone(run_detached(failing_cascade))
        self.assertIn('component:1 reported errors', logs.output[0])

    @override_settings(PRICING_CASCADE_ASYNC=False)
    def test_inline_run_logs_exceptions(self):
        with self.assertLogs('backend.pricing.cascade', level='ERROR') as logs:
            run_detached(crashing_cascade)
        self.assertIn('crashing_cascade', logs.output[0])
        self.assertIn('connection lost', logs.output[0])

    @override_settings(PRICING_CASCADE_ASYNC=False)
    def test_inline_run_without_errors_logs_nothing(self):
        with self.assertNoLogs('backend.pricing.cascade', level='ERROR'):
            run_detached(clean_cascade)

    @override_settings(PRICING_CASCADE_ASYNC=True)
    def test_threaded_run_logs_reported_errors(self):
        with self.assertLogs('backend.pricing.cascade', level='ERROR') as logs:
            thread = run_detached(failing_cascade)
            thread.join(timeout=5)
        self.assertFalse(thread.is_alive())
        self.assertTrue(thread.daemon)
        self.assertIn('component:1 reported errors', logs.output[0])

    @override_settings(PRICING_CASCADE_ASYNC=True)
    def test_threaded_run_logs_exceptions(self):
        with self.assertLogs('backend.pricing.cascade', level='ERROR') as logs:
            thread = run_detached(crashing_cascade)
            thread.join(timeout=5)
        self.assertFalse(thread.is_alive())
        self.assertIn('connection lost', logs.output[0])

    @override_settings(PRICING_CASCADE_ASYNC=True)
    def test_threaded_run_closes_its_connection(self):
        with patch('backend.pricing.cascade.connection') as thread_connection:
            thread = run_detached(clean_cascade)
            thread.join(timeout=5)
        thread_connection.close.assert_called_once_with()


class PriceFreezeTests(TestCase):
    """Freezing and releasing project line prices"""

    def setUp(self):
        cache.clear()
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.product = TestDataFactory.create_product(components=[(self.component, 1)])
        self.project = TestDataFactory.create_project()
        self.link = TestDataFactory.add_product_to_project(self.project, self.product, quantity=2)

    def test_draft_links_are_not_frozen(self):
        self.assertIsNone(self.link.frozen_unit_price)
        self.assertFalse(self.link.is_frozen)

    def test_freeze_is_idempotent(self):
        self.assertEqual(freeze_links_for_project(self.project.pk), 1)
        Product.objects.filter(pk=self.product.pk).update(sale_price=Decimal('50'))

        self.assertEqual(freeze_links_for_project(self.project.pk), 0)
        self.link.refresh_from_db()
        self.assertEqual(self.link.frozen_unit_price, Decimal('12'))

    def test_status_change_freezes_and_audits(self):
        action = change_project_status(self.project, Project.STATUS_IN_PROGRESS)
        self.assertEqual(action, FREEZE)
        self.assertTrue(AuditLog.objects.filter(action='price_freeze', object_id=str(self.project.pk)).exists())
        self.assertTrue(AuditLog.objects.filter(action='status_change', object_id=str(self.project.pk)).exists())

    def test_moving_between_locked_statuses_keeps_prices(self):
        change_project_status(self.project, Project.STATUS_IN_PROGRESS)
        Product.objects.filter(pk=self.product.pk).update(sale_price=Decimal('50'))

        self.assertIsNone(change_project_status(self.project, Project.STATUS_DONE))
        self.link.refresh_from_db()
        self.assertEqual(self.link.frozen_unit_price, Decimal('12'))

    def test_returning_to_draft_releases_prices(self):
        change_project_status(self.project, Project.STATUS_IN_PROGRESS)
        Product.objects.filter(pk=self.product.pk).update(sale_price=Decimal('50'))

        action = change_project_status(self.project, Project.STATUS_DRAFT)

        self.assertEqual(action, UNFREEZE)
        self.link.refresh_from_db()
        self.assertIsNone(self.link.frozen_unit_price)
        self.assertEqual(project_totals(self.project.pk).total_sale, Decimal('100'))

    def test_unfreeze_of_draft_project_is_a_no_op(self):
        self.assertEqual(unfreeze_links_for_project(self.project.pk), 0)

    def test_failed_freeze_blocks_the_status_change(self):
        with patch.object(ProjectProduct, 'save', side_effect=DatabaseError('disk full')):
            with self.assertRaises(PriceFreezeError):
                change_project_status(self.project, Project.STATUS_IN_PROGRESS)

        self.assertEqual(self.project.status, Project.STATUS_DRAFT)
        self.project.refresh_from_db()
        self.assertEqual(self.project.status, Project.STATUS_DRAFT)
        self.link.refresh_from_db()
        self.assertIsNone(self.link.frozen_unit_price)

    def test_freeze_of_missing_project(self):
        with self.assertRaises(NotFoundError):
            freeze_links_for_project(999999)


class ProjectFiguresTests(TestCase):
    """Totals, quote lines and component requirements"""

    def setUp(self):
        cache.clear()
        self.wood = TestDataFactory.create_category(name='Wood')
        self.metal = TestDataFactory.create_category(name='Metal')
        self.plank = TestDataFactory.create_component(name='Plank', purchase_price='10', margin_percent='20', category=self.wood)
        self.screw = TestDataFactory.create_component(name='Screw', purchase_price='0.50', margin_percent='100', category=self.metal)
        self.glue = TestDataFactory.create_component(name='Glue', purchase_price='2', margin_percent='0')
        self.table = TestDataFactory.create_product(
            name='Table', components=[(self.plank, 4), (self.screw, 10)], hourly_rate='40', hours='2'
        )
        self.shelf = TestDataFactory.create_product(
            name='Shelf', components=[(self.plank, 2), (self.screw, 4), (self.glue, 1)]
        )
        self.project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(self.project, self.table, quantity=2)
        TestDataFactory.add_product_to_project(self.project, self.shelf, quantity=3, frozen_unit_price=Decimal('30'))

    def test_project_totals(self):
        totals = project_totals(self.project.pk)
        # Table: sale 4x12 + 10x1 + 80 = 138, cost 4x10 + 10x0.5 + 80 = 125
        # Shelf: frozen at 30, cost 2x10 + 4x0.5 + 2 = 24
        self.assertEqual(totals.total_sale, Decimal('366'))
        self.assertEqual(totals.total_cost, Decimal('322'))
        self.assertEqual(totals.product_count, 2)
        self.assertEqual(totals.total_quantity, 5)
        self.assertEqual(totals.frozen_lines, 1)
        data = totals.as_dict()
        self.assertEqual(data['total_sale'], '366.00')
        self.assertEqual(data['margin_amount'], '44.00')
        self.assertEqual(data['margin_percent'], '13.66')

    def test_totals_of_empty_project(self):
        empty = TestDataFactory.create_project()
        data = project_totals(empty.pk).as_dict()
        self.assertEqual(data['total_sale'], '0.00')
        self.assertIsNone(data['margin_percent'])

    def test_totals_are_cached_until_a_line_changes(self):
        project_totals(self.project.pk)
        ProjectProduct.objects.filter(project=self.project, product=self.table).update(quantity=10)
        # Queryset update sends no signal: the cached figure is still served
        self.assertEqual(project_totals(self.project.pk).total_quantity, 5)

        link = ProjectProduct.objects.get(project=self.project, product=self.table)
        link.quantity = 1
        link.save()
        self.assertEqual(project_totals(self.project.pk).total_quantity, 4)

    def test_quote_lines(self):
        lines, total = quote_lines(self.project.pk)
        self.assertEqual([line.product_id for line in lines], [self.table.pk, self.shelf.pk])
        self.assertEqual(lines[0].unit_price, Decimal('138'))
        self.assertFalse(lines[0].is_frozen)
        self.assertEqual(lines[1].as_dict()['line_total'], '90.00')
        self.assertTrue(lines[1].is_frozen)
        self.assertEqual(total, Decimal('366'))

    def test_component_requirements(self):
        groups = component_requirements(self.project.pk)
        self.assertEqual([g.category for g in groups], ['Metal', UNCATEGORIZED, 'Wood'])
        by_category = {g.category: g.components for g in groups}
        self.assertEqual(by_category['Wood'][0].quantity, 14)  # 2x4 + 3x2
        self.assertEqual(by_category['Metal'][0].quantity, 32)  # 2x10 + 3x4
        self.assertEqual(by_category[UNCATEGORIZED][0].quantity, 3)

    def test_component_requirements_filtered_by_category(self):
        groups = component_requirements(self.project.pk, category_ids=[self.wood.pk])
        self.assertEqual(len(groups), 1)
        self.assertEqual(groups[0].as_dict()['components'][0]['name'], 'Plank')


class SubCentPriceTests(TestCase):
    """Stored prices keep every digit of 2-decimal prices and margins"""

    def setUp(self):
        cache.clear()
        # 0.01 x 1.3333 = 0.013333
        self.washer = TestDataFactory.create_component(name='Washer', purchase_price='0.01', margin_percent='33.33')
        self.kit = TestDataFactory.create_product(name='Washer kit', components=[(self.washer, 1)])
        self.project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(self.project, self.kit, quantity=1000)

    def test_stored_prices_match_the_formula(self):
        self.washer.refresh_from_db()
        self.kit.refresh_from_db()
        self.assertEqual(self.washer.sale_price, Decimal('0.013333'))
        self.assertEqual(self.kit.sale_price, Decimal('0.013333'))
        self.assertEqual(self.kit.sale_price, cost_model.component_sale_price('0.01', '33.33'))

    def test_high_quantity_line_does_not_drift(self):
        totals = project_totals(self.project.pk)
        self.assertEqual(totals.total_sale, Decimal('13.333'))
        self.assertEqual(totals.as_dict()['total_sale'], '13.33')
        self.assertEqual(totals.as_dict()['total_cost'], '10.00')

    def test_frozen_price_keeps_every_digit(self):
        change_project_status(self.project, Project.STATUS_IN_PROGRESS)
        link = ProjectProduct.objects.get(project=self.project)
        self.assertEqual(link.frozen_unit_price, Decimal('0.013333'))
        self.assertEqual(project_totals(self.project.pk, use_cache=False).total_sale, Decimal('13.333'))


@override_settings(PRICING_CASCADE_ASYNC=False)
class PricingAPITests(TestCase):
    """Test pricing API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.product = TestDataFactory.create_product(components=[(self.component, 2)], hourly_rate='50', hours='1')
        self.project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(self.project, self.product, quantity=3)

    def test_component_recompute_returns_cascade_result(self):
        Component.objects.filter(pk=self.component.pk).update(margin_percent=Decimal('50'))

        response = self.client.post(f'/api/v1/pricing/components/{self.component.id}/recompute/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['ok'])
        self.assertEqual(response.data['recomputed_products'], [self.product.pk])
        self.assertEqual(response.data['affected_projects'], [self.project.pk])
        self.component.refresh_from_db()
        self.assertEqual(self.component.sale_price, Decimal('15'))

    def test_product_recompute(self):
        Product.objects.filter(pk=self.product.pk).update(sale_price=Decimal('0'))
        response = self.client.post(f'/api/v1/pricing/products/{self.product.id}/recompute/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['recomputed_products'], [self.product.pk])
        self.product.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('74'))

    def test_recompute_unknown_product(self):
        response = self.client.post('/api/v1/pricing/products/999999/recompute/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_price_preview(self):
        data = {
            'components': [{'component': self.component.id, 'quantity': 2}],
            'hourly_rate': '50',
            'hours': '1',
        }
        response = self.client.post('/api/v1/pricing/products/preview/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['cost_price'], '70.00')
        self.assertEqual(response.data['sale_price'], '74.00')
        self.assertEqual(response.data['components_sale_total'], '24.00')
        self.assertEqual(response.data['margin_amount'], '4.00')

    def test_price_preview_rejects_zero_quantity(self):
        data = {'components': [{'component': self.component.id, 'quantity': 0}]}
        response = self.client.post('/api/v1/pricing/products/preview/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.post(f'/api/v1/pricing/products/{self.product.id}/recompute/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class RecomputePricesCommandTests(TestCase):
    """Test the recompute_prices management command"""

    def setUp(self):
        cache.clear()
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.product = TestDataFactory.create_product(components=[(self.component, 2)])
        self.project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(self.project, self.product, quantity=1)
        # Prices edited behind the application's back
        Component.objects.filter(pk=self.component.pk).update(margin_percent=Decimal('50'))

    def test_dry_run_reports_without_writing(self):
        out = StringIO()
        call_command('recompute_prices', '--dry-run', stdout=out)
        self.assertIn('Products out of date: 1', out.getvalue())
        self.product.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('24'))

    def test_recompute_all(self):
        out = StringIO()
        call_command('recompute_prices', stdout=out)
        self.component.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.component.sale_price, Decimal('15'))
        self.assertEqual(self.product.sale_price, Decimal('30'))
        self.assertIn('Products repriced: 1', out.getvalue())
        self.assertIn('Draft projects affected: 1', out.getvalue())

    def test_dry_run_reports_cost_drift(self):
        # Stored sale price already matches: only the cost is stale
        Component.objects.filter(pk=self.component.pk).update(margin_percent=Decimal('20'))
        Product.objects.filter(pk=self.product.pk).update(cost_price=Decimal('0'))
        out = StringIO()
        call_command('recompute_prices', '--dry-run', stdout=out)
        self.assertIn('Products out of date: 1', out.getvalue())
        self.assertIn('cost 0.000000 -> 20.000000', out.getvalue())
        self.product.refresh_from_db()
        self.assertEqual(self.product.cost_price, Decimal('0'))

    def test_dry_run_reports_stale_component_sale_price(self):
        out = StringIO()
        call_command('recompute_prices', '--dry-run', stdout=out)
        self.assertIn('Components out of date: 1', out.getvalue())

    def test_single_product_refreshes_its_components_first(self):
        unrelated = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        Component.objects.filter(pk=unrelated.pk).update(margin_percent=Decimal('50'))
        out = StringIO()
        call_command('recompute_prices', '--product-id', str(self.product.pk), stdout=out)
        self.component.refresh_from_db()
        self.product.refresh_from_db()
        unrelated.refresh_from_db()
        self.assertEqual(self.component.sale_price, Decimal('15'))
        self.assertEqual(self.product.sale_price, Decimal('30'))
        self.assertEqual(unrelated.sale_price, Decimal('12'))
        self.assertIn('Component sale prices refreshed: 1', out.getvalue())
