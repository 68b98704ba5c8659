"""
Test suite for the catalog module
Tests: component and product models, CRUD endpoints, BOM writes and price recompute
"""
from decimal import Decimal
from unittest.mock import Mock
from django.contrib import admin
from django.core.cache import cache
from django.test import RequestFactory, TestCase, override_settings
from rest_framework import status
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.catalog.admin import ComponentAdmin
from backend.catalog.models import Category, Component, Product, ProductComponent
from backend.pricing.signals import component_price_changed
from backend.pricing.totals import project_totals


class ComponentModelTests(TestCase):
    """Test Component model methods"""

    def test_sale_price_is_derived_on_save(self):
        component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.assertEqual(component.sale_price, Decimal('12'))
        component.refresh_from_db()
        self.assertEqual(component.sale_price, Decimal('12.0000'))

    def test_update_fields_save_keeps_sale_price_in_step(self):
        component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        component.purchase_price = Decimal('20')
        component.save(update_fields=['purchase_price'])
        component.refresh_from_db()
        self.assertEqual(component.sale_price, Decimal('24'))

    def test_default_margin(self):
        component = Component.objects.create(name='Hinge', purchase_price=Decimal('4'))
        self.assertEqual(component.margin_percent, Decimal('30.00'))
        self.assertEqual(component.sale_price, Decimal('5.2'))

    def test_str(self):
        component = TestDataFactory.create_component(name='Hinge', reference='HNG-1')
        self.assertEqual(str(component), 'Hinge (HNG-1)')


@override_settings(PRICING_CASCADE_ASYNC=False)
class ComponentAPITests(TestCase):
    """Test Component API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(name='Wood')

    def test_create_component(self):
        data = {
            'name': 'Oak plank',
            'reference': 'OAK-01',
            'category': self.category.id,
            'purchase_price': '10.00',
            'margin_percent': '20.00',
        }
        response = self.client.post('/api/v1/components/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sale_price'], '12.000000')
        self.assertEqual(response.data['category_name'], 'Wood')

    def test_sale_price_cannot_be_written(self):
        data = {'name': 'Oak plank', 'purchase_price': '10.00', 'margin_percent': '20.00', 'sale_price': '99'}
        response = self.client.post('/api/v1/components/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sale_price'], '12.000000')

    def test_negative_purchase_price_is_rejected(self):
        data = {'name': 'Oak plank', 'purchase_price': '-1.00'}
        response = self.client.post('/api/v1/components/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('purchase_price', response.data)

    def test_wrong_category_kind_is_rejected(self):
        product_category = TestDataFactory.create_category(name='Furniture', kind=Category.KIND_PRODUCT)
        data = {'name': 'Oak plank', 'purchase_price': '10.00', 'category': product_category.id}
        response = self.client.post('/api/v1/components/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_components_with_filters(self):
        TestDataFactory.create_component(name='Oak plank', category=self.category)
        TestDataFactory.create_component(name='Steel screw')
        response = self.client.get('/api/v1/components/', {'category': self.category.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['name'] for c in response.data], ['Oak plank'])

        response = self.client.get('/api/v1/components/', {'search': 'steel'})
        self.assertEqual([c['name'] for c in response.data], ['Steel screw'])

    def test_margin_edit_cascades_to_products_and_draft_projects(self):
        component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        product = TestDataFactory.create_product(components=[(component, 2)], hourly_rate='50', hours='1')
        project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(project, product, quantity=3)
        self.assertEqual(project_totals(project.pk).total_sale, Decimal('222'))

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.patch(f'/api/v1/components/{component.id}/', {'margin_percent': '50'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sale_price'], '15.000000')
        product.refresh_from_db()
        self.assertEqual(product.sale_price, Decimal('80'))
        self.assertEqual(project_totals(project.pk).total_sale, Decimal('240'))
        self.assertTrue(
            AuditLog.objects.filter(action='price_change', model_name='Component', object_id=str(component.pk)).exists()
        )

    def test_edit_without_price_change_does_not_cascade(self):
        component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        TestDataFactory.create_product(components=[(component, 1)])
        with self.captureOnCommitCallbacks() as callbacks:
            response = self.client.patch(f'/api/v1/components/{component.id}/', {'notes': 'Sanded'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(AuditLog.objects.filter(action='price_change', model_name='Component').exists())
        self.assertTrue(AuditLog.objects.filter(action='update', model_name='Component').exists())
        # No cascade registered
        self.assertEqual(len(callbacks), 0)

    def test_delete_component_removes_bom_lines(self):
        component = TestDataFactory.create_component()
        product = TestDataFactory.create_product(components=[(component, 1)])
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.delete(f'/api/v1/components/{component.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ProductComponent.objects.filter(product=product).exists())
        product.refresh_from_db()
        self.assertEqual(product.sale_price, Decimal('0'))


@override_settings(PRICING_CASCADE_ASYNC=False)
class ProductAPITests(TestCase):
    """Test Product API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.plank = TestDataFactory.create_component(name='Plank', purchase_price='10', margin_percent='20')
        self.screw = TestDataFactory.create_component(name='Screw', purchase_price='0.50', margin_percent='100')

    def test_create_product_with_components(self):
        data = {
            'name': 'Table',
            'reference': 'TBL-01',
            'hourly_rate': '50.00',
            'hours': '1.00',
            'components': [
                {'component': self.plank.id, 'quantity': 2},
                {'component': self.screw.id, 'quantity': 8},
            ],
        }
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        # cost 2x10 + 8x0.5 + 50, sale 2x12 + 8x1 + 50
        self.assertEqual(response.data['cost_price'], '74.000000')
        self.assertEqual(response.data['sale_price'], '82.000000')
        self.assertEqual(response.data['margin_amount'], '8.00')
        self.assertEqual(len(response.data['bom_lines']), 2)

    def test_product_without_cost_has_no_margin_percent(self):
        response = self.client.post('/api/v1/products/', {'name': 'Placeholder'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sale_price'], '0.000000')
        self.assertIsNone(response.data['margin_percent'])

    def test_duplicate_component_is_rejected(self):
        data = {
            'name': 'Table',
            'components': [
                {'component': self.plank.id, 'quantity': 2},
                {'component': self.plank.id, 'quantity': 1},
            ],
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('components', response.data)

    def test_zero_quantity_is_rejected(self):
        data = {'name': 'Table', 'components': [{'component': self.plank.id, 'quantity': 0}]}
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_replaces_bill_of_materials(self):
        product = TestDataFactory.create_product(components=[(self.plank, 2)], hourly_rate='50', hours='1')
        project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(project, product, quantity=1)

        data = {'components': [{'component': self.screw.id, 'quantity': 4}]}
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.patch(f'/api/v1/products/{product.id}/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sale_price'], '54.000000')
        self.assertEqual(list(product.bom_lines.values_list('component_id', flat=True)), [self.screw.pk])
        self.assertEqual(project_totals(project.pk).total_sale, Decimal('54'))

    def test_patch_without_components_keeps_bill_of_materials(self):
        product = TestDataFactory.create_product(components=[(self.plank, 2)])
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.patch(f'/api/v1/products/{product.id}/', {'hours': '2', 'hourly_rate': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sale_price'], '44.000000')
        self.assertEqual(product.bom_lines.count(), 1)

    def test_list_products(self):
        TestDataFactory.create_product(name='Table', components=[(self.plank, 2)])
        TestDataFactory.create_product(name='Stool')
        response = self.client.get('/api/v1/products/', {'component': self.plank.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['components_count'], 1)

    def test_product_components(self):
        product = TestDataFactory.create_product(components=[(self.plank, 2), (self.screw, 6)])
        response = self.client.get(f'/api/v1/products/{product.id}/components/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([line['component_name'] for line in response.data], ['Plank', 'Screw'])

    def test_delete_product(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())


class CategoryAPITests(TestCase):
    """Test read-only category listing"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_list_by_kind(self):
        TestDataFactory.create_category(name='Wood')
        TestDataFactory.create_category(name='Furniture', kind=Category.KIND_PRODUCT)
        response = self.client.get('/api/v1/categories/', {'kind': 'product'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['name'] for c in response.data], ['Furniture'])

    def test_categories_are_read_only(self):
        response = self.client.post('/api/v1/categories/', {'name': 'New', 'kind': 'component'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)


@override_settings(PRICING_CASCADE_ASYNC=False)
class ComponentAdminTests(TestCase):
    """Admin edits follow the same price flow as the API"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(is_staff=True, is_superuser=True)
        self.model_admin = ComponentAdmin(Component, admin.site)
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.product = TestDataFactory.create_product(components=[(self.component, 2)])

    def save_in_admin(self, component, changed_data):
        request = RequestFactory().post('/admin/catalog/component/')
        request.user = self.user
        with self.captureOnCommitCallbacks(execute=True):
            self.model_admin.save_model(request, component, Mock(changed_data=changed_data), True)

    def test_price_edit_is_audited_signalled_and_cascaded(self):
        received = []

        def handler(sender, **kwargs):
            received.append(kwargs)

        component_price_changed.connect(handler)
        self.addCleanup(component_price_changed.disconnect, handler)

        component = Component.objects.get(pk=self.component.pk)
        component.margin_percent = Decimal('50')
        self.save_in_admin(component, ['margin_percent'])

        log = AuditLog.objects.get(action='price_change', model_name='Component', object_id=str(component.pk))
        self.assertEqual(log.user, self.user)
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0]['old_sale_price'], Decimal('12'))
        self.assertEqual(received[0]['new_sale_price'], Decimal('15'))
        self.product.refresh_from_db()
        self.assertEqual(self.product.sale_price, Decimal('30'))

    def test_edit_without_price_change_is_not_audited_as_price_change(self):
        component = Component.objects.get(pk=self.component.pk)
        component.notes = 'Sanded'
        self.save_in_admin(component, ['notes'])
        self.assertFalse(AuditLog.objects.filter(action='price_change', model_name='Component').exists())
