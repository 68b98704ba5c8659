"""
Test suite for the projects module
Tests: project CRUD, line replacement, freeze-on-attach, status transitions and project figures
"""
from decimal import Decimal
from unittest.mock import patch
from django.core.cache import cache
from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.projects.models import Project, ProjectProduct


@override_settings(PRICING_CASCADE_ASYNC=False)
class ProjectAPITests(TestCase):
    """Test Project API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.customer = TestDataFactory.create_client(company_name='Maison Durand')
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.table = TestDataFactory.create_product(
            name='Table', components=[(self.component, 2)], hourly_rate='50', hours='1'
        )
        self.stool = TestDataFactory.create_product(name='Stool', components=[(self.component, 1)])

    def test_create_draft_project_with_products(self):
        data = {
            'name': 'Kitchen',
            'client': self.customer.id,
            'products': [{'product': self.table.id, 'quantity': 3}],
        }
        response = self.client.post('/api/v1/projects/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], Project.STATUS_DRAFT)
        self.assertEqual(response.data['client_name'], 'Maison Durand')
        self.assertEqual(response.data['created_by'], self.user.id)
        line = response.data['lines'][0]
        self.assertIsNone(line['frozen_unit_price'])
        self.assertEqual(line['unit_price'], '74.00')
        self.assertEqual(line['line_total'], '222.00')

    def test_create_locked_project_freezes_lines_on_attach(self):
        data = {
            'name': 'Office',
            'client': self.customer.id,
            'status': Project.STATUS_IN_PROGRESS,
            'products': [{'product': self.table.id, 'quantity': 1}],
        }
        response = self.client.post('/api/v1/projects/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        link = ProjectProduct.objects.get(project_id=response.data['id'])
        self.assertEqual(link.frozen_unit_price, Decimal('74'))

    def test_duplicate_products_are_rejected(self):
        data = {
            'name': 'Kitchen',
            'client': self.customer.id,
            'products': [
                {'product': self.table.id, 'quantity': 1},
                {'product': self.table.id, 'quantity': 2},
            ],
        }
        response = self.client.post('/api/v1/projects/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('products', response.data)

    def test_end_date_before_start_date_is_rejected(self):
        data = {'name': 'Kitchen', 'client': self.customer.id, 'start_date': '2026-05-10', 'end_date': '2026-05-01'}
        response = self.client.post('/api/v1/projects/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('end_date', response.data)

    def test_line_replacement_on_locked_project_keeps_existing_freeze(self):
        project = TestDataFactory.create_project(client=self.customer, status=Project.STATUS_IN_PROGRESS)
        TestDataFactory.add_product_to_project(project, self.table, quantity=1, frozen_unit_price=Decimal('60'))

        data = {'products': [
            {'product': self.table.id, 'quantity': 5},
            {'product': self.stool.id, 'quantity': 2},
        ]}
        response = self.client.patch(f'/api/v1/projects/{project.id}/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        table_link = ProjectProduct.objects.get(project=project, product=self.table)
        stool_link = ProjectProduct.objects.get(project=project, product=self.stool)
        self.assertEqual(table_link.quantity, 5)
        self.assertEqual(table_link.frozen_unit_price, Decimal('60'))
        self.assertEqual(stool_link.frozen_unit_price, Decimal('12'))

    def test_line_replacement_drops_missing_products(self):
        project = TestDataFactory.create_project(client=self.customer)
        TestDataFactory.add_product_to_project(project, self.table, quantity=1)
        TestDataFactory.add_product_to_project(project, self.stool, quantity=1)

        data = {'products': [{'product': self.stool.id, 'quantity': 4}]}
        response = self.client.patch(f'/api/v1/projects/{project.id}/', data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([line['product'] for line in response.data['lines']], [self.stool.id])

    def test_status_update_freezes_prices(self):
        project = TestDataFactory.create_project(client=self.customer)
        TestDataFactory.add_product_to_project(project, self.table, quantity=3)

        response = self.client.patch(f'/api/v1/projects/{project.id}/', {'status': 'in_progress'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['has_locked_prices'])
        self.assertEqual(response.data['lines'][0]['frozen_unit_price'], '74.000000')

    def test_new_lines_and_status_change_in_one_save(self):
        project = TestDataFactory.create_project(client=self.customer)
        data = {'status': 'done', 'products': [{'product': self.stool.id, 'quantity': 1}]}
        response = self.client.patch(f'/api/v1/projects/{project.id}/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        link = ProjectProduct.objects.get(project=project)
        self.assertEqual(link.frozen_unit_price, Decimal('12'))

    def test_failed_freeze_rolls_back_the_whole_save(self):
        project = TestDataFactory.create_project(client=self.customer, name='Kitchen')
        TestDataFactory.add_product_to_project(project, self.table, quantity=3)

        with patch.object(ProjectProduct, 'save', side_effect=DatabaseError('lock timeout')):
            response = self.client.patch(
                f'/api/v1/projects/{project.id}/', {'name': 'Kitchen v2', 'status': 'in_progress'}, format='json'
            )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertIn('error', response.data)
        project.refresh_from_db()
        self.assertEqual(project.status, Project.STATUS_DRAFT)
        self.assertEqual(project.name, 'Kitchen')

    def test_unknown_status_is_rejected(self):
        project = TestDataFactory.create_project(client=self.customer)
        response = self.client.patch(f'/api/v1/projects/{project.id}/', {'status': 'archived'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_status_endpoint(self):
        project = TestDataFactory.create_project(client=self.customer)
        TestDataFactory.add_product_to_project(project, self.table, quantity=1)

        response = self.client.post(f'/api/v1/projects/{project.id}/status/', {'status': 'in_progress'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['price_action'], 'freeze')

        response = self.client.post(f'/api/v1/projects/{project.id}/status/', {'status': 'draft'}, format='json')
        self.assertEqual(response.data['price_action'], 'unfreeze')
        self.assertIsNone(ProjectProduct.objects.get(project=project).frozen_unit_price)

    def test_status_endpoint_rejects_unknown_status(self):
        project = TestDataFactory.create_project(client=self.customer)
        response = self.client.post(f'/api/v1/projects/{project.id}/status/', {'status': 'archived'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'status')

    def test_list_projects(self):
        draft = TestDataFactory.create_project(client=self.customer)
        TestDataFactory.add_product_to_project(draft, self.table, quantity=2)
        TestDataFactory.add_product_to_project(draft, self.stool, quantity=3)
        TestDataFactory.create_project(client=self.customer, status=Project.STATUS_DONE)

        response = self.client.get('/api/v1/projects/', {'status': 'draft'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['product_count'], 2)
        self.assertEqual(response.data[0]['total_quantity'], 5)

    def test_delete_project(self):
        project = TestDataFactory.create_project(client=self.customer)
        TestDataFactory.add_product_to_project(project, self.table)
        response = self.client.delete(f'/api/v1/projects/{project.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ProjectProduct.objects.filter(project_id=project.id).exists())


@override_settings(PRICING_CASCADE_ASYNC=False)
class ProjectFiguresAPITests(TestCase):
    """Test totals, quote and component requirement endpoints"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())
        self.wood = TestDataFactory.create_category(name='Wood')
        self.plank = TestDataFactory.create_component(name='Plank', purchase_price='10', margin_percent='20', category=self.wood)
        self.table = TestDataFactory.create_product(
            name='Table', components=[(self.plank, 2)], hourly_rate='50', hours='1'
        )
        self.project = TestDataFactory.create_project()
        TestDataFactory.add_product_to_project(self.project, self.table, quantity=3)

    def test_totals(self):
        response = self.client.get(f'/api/v1/projects/{self.project.id}/totals/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_sale'], '222.00')
        self.assertEqual(response.data['total_cost'], '210.00')
        self.assertEqual(response.data['margin_amount'], '12.00')
        self.assertEqual(response.data['margin_percent'], '5.71')
        self.assertEqual(response.data['product_count'], 1)
        self.assertEqual(response.data['total_quantity'], 3)

    def test_totals_follow_component_edit_while_draft(self):
        self.client.get(f'/api/v1/projects/{self.project.id}/totals/')
        with self.captureOnCommitCallbacks(execute=True):
            self.client.patch(f'/api/v1/components/{self.plank.id}/', {'margin_percent': '50'}, format='json')
        response = self.client.get(f'/api/v1/projects/{self.project.id}/totals/')
        self.assertEqual(response.data['total_sale'], '240.00')

    def test_totals_of_unknown_project(self):
        response = self.client.get('/api/v1/projects/999999/totals/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_quote(self):
        response = self.client.get(f'/api/v1/projects/{self.project.id}/quote/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], '222.00')
        self.assertEqual(response.data['lines'][0]['name'], 'Table')
        self.assertEqual(response.data['lines'][0]['unit_price'], '74.00')

    def test_component_requirements(self):
        response = self.client.get(f'/api/v1/projects/{self.project.id}/component-requirements/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        group = response.data['groups'][0]
        self.assertEqual(group['category'], 'Wood')
        self.assertEqual(group['components'][0]['quantity'], 6)

    def test_component_requirements_category_filter(self):
        response = self.client.get(
            f'/api/v1/projects/{self.project.id}/component-requirements/', {'categories': '999999'}
        )
        self.assertEqual(response.data['groups'], [])

        response = self.client.get(
            f'/api/v1/projects/{self.project.id}/component-requirements/', {'categories': 'wood'}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
