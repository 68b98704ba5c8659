"""
Test suite for the core module
Tests: audit logging, project totals cache and its invalidation signals, API error handling
"""
from decimal import Decimal
from unittest.mock import patch
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from backend.core.cache_signals import suspend_cache_signals
from backend.core.cache_utils import (
    cache_project_totals, get_cached_project_totals, invalidate_project_totals, project_totals_cache_key
)
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import create_audit_log, jsonable_changes
from backend.pricing.signals import product_price_changed


class AuthAPITests(TestCase):
    """Test JWT login and current user endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='workshop', password='testpass123')

    def test_login_returns_tokens(self):
        client = AuthenticatedAPIClient()
        response = client.post('/api/v1/auth/login/', {'username': 'workshop', 'password': 'testpass123'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_login_with_wrong_password(self):
        client = AuthenticatedAPIClient()
        response = client.post('/api/v1/auth/login/', {'username': 'workshop', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.user)
        response = client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'workshop')

    def test_me_requires_authentication(self):
        response = AuthenticatedAPIClient().get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class AuditLogTests(TestCase):
    """Test audit log helpers"""

    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_create_audit_log_from_instance(self):
        component = TestDataFactory.create_component(name='Hinge', reference='HNG-1')
        log = create_audit_log(
            action='price_change',
            instance=component,
            user=self.user,
            changes={'sale_price': {'old': Decimal('12.0000'), 'new': Decimal('15.0000')}},
        )
        self.assertEqual(log.model_name, 'Component')
        self.assertEqual(log.object_id, str(component.pk))
        self.assertEqual(log.object_reference, 'HNG-1')
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.changes, {'sale_price': {'old': '12.0000', 'new': '15.0000'}})

    def test_missing_fields_skip_the_entry(self):
        with self.assertLogs('backend.core.utils', level='WARNING'):
            self.assertIsNone(create_audit_log(action='update'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_audit_failure_never_raises(self):
        with patch.object(AuditLog.objects, 'create', side_effect=RuntimeError('db down')):
            with self.assertLogs('backend.core.utils', level='ERROR'):
                self.assertIsNone(create_audit_log(action='update', model_name='Client', object_id=1))

    def test_jsonable_changes(self):
        changes = jsonable_changes({'price': Decimal('1.50'), 'ids': [Decimal('2'), 3], 'name': 'x'})
        self.assertEqual(changes, {'price': '1.50', 'ids': ['2', 3], 'name': 'x'})


class AuditLogAPITests(TestCase):
    """Test AuditLog API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_filter_price_history_of_a_component(self):
        component = TestDataFactory.create_component()
        other = TestDataFactory.create_component()
        create_audit_log(action='price_change', instance=component, user=self.user)
        create_audit_log(action='price_change', instance=other, user=self.user)
        create_audit_log(action='update', instance=component, user=self.user)

        response = self.client.get('/api/v1/audit-logs/', {
            'action': 'price_change', 'model': 'Component', 'object_id': component.pk
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['user']['username'], self.user.username)

    def test_detail_of_another_users_log_is_forbidden(self):
        other_user = TestDataFactory.create_user()
        log = create_audit_log(action='update', model_name='Client', object_id=1, user=other_user)
        response = self.client.get(f'/api/v1/audit-logs/{log.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ProjectTotalsCacheTests(TestCase):
    """Cached project totals are dropped when prices or lines change"""

    def setUp(self):
        cache.clear()
        self.component = TestDataFactory.create_component(purchase_price='10', margin_percent='20')
        self.product = TestDataFactory.create_product(components=[(self.component, 1)])
        self.project = TestDataFactory.create_project()
        self.link = TestDataFactory.add_product_to_project(self.project, self.product, quantity=2)

    def seed(self):
        key = project_totals_cache_key(self.project.pk)
        cache_project_totals(key, {'total_sale': 'stale'})
        return key

    def test_cache_round_trip(self):
        key = self.seed()
        data, cache_key = get_cached_project_totals(self.project.pk)
        self.assertEqual(cache_key, key)
        self.assertEqual(data, {'total_sale': 'stale'})

    def test_line_change_invalidates(self):
        self.seed()
        self.link.quantity = 5
        self.link.save()
        self.assertIsNone(get_cached_project_totals(self.project.pk)[0])

    def test_project_change_invalidates(self):
        self.seed()
        self.project.name = 'Renamed'
        self.project.save()
        self.assertIsNone(get_cached_project_totals(self.project.pk)[0])

    def test_product_price_event_invalidates(self):
        self.seed()
        product_price_changed.send(sender=None, product_id=self.product.pk, draft_project_ids=[self.project.pk])
        self.assertIsNone(get_cached_project_totals(self.project.pk)[0])

    def test_product_edit_invalidates(self):
        self.seed()
        self.product.hours = Decimal('1')
        self.product.save()
        self.assertIsNone(get_cached_project_totals(self.project.pk)[0])

    def test_reader_racing_a_price_change_cannot_store_stale_totals(self):
        # Reader misses and starts computing from pre-change prices
        data, key = get_cached_project_totals(self.project.pk)
        self.assertIsNone(data)
        # The cascade commits and invalidates before the reader stores its figures
        product_price_changed.send(sender=None, product_id=self.product.pk, draft_project_ids=[self.project.pk])
        cache_project_totals(key, {'total_sale': 'stale'})
        self.assertIsNone(get_cached_project_totals(self.project.pk)[0])

    def test_invalidation_survives_an_evicted_version(self):
        key = self.seed()
        cache.delete(f'project_totals_version:{self.project.pk}')
        invalidate_project_totals([self.project.pk])
        self.assertNotEqual(project_totals_cache_key(self.project.pk), key)
        self.assertIsNone(get_cached_project_totals(self.project.pk)[0])

    def test_suspended_signals_keep_the_cache(self):
        self.seed()
        with suspend_cache_signals():
            self.link.quantity = 7
            self.link.save()
        self.assertIsNotNone(get_cached_project_totals(self.project.pk)[0])


class ExceptionHandlerTests(TestCase):
    """Pricing errors raised inside views become JSON responses"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    def test_pricing_error_is_mapped_to_its_status(self):
        from backend.pricing.exceptions import NotFoundError
        project = TestDataFactory.create_project()
        with patch('backend.projects.views.project_totals', side_effect=NotFoundError('Project', project.pk)):
            response = self.client.get(f'/api/v1/projects/{project.id}/totals/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], f'Project {project.pk} not found')
