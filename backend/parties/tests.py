"""
Test suite for the parties module
Tests: client CRUD and protection of clients with projects
"""
from django.test import TestCase
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.catalog.models import Category
from backend.parties.models import Client


class ClientAPITests(TestCase):
    """Test Client API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_client(self):
        data = {
            'company_name': 'Maison Durand',
            'contact_first_name': 'Claire',
            'contact_last_name': 'Durand',
            'contact_email': 'claire@durand.fr',
            'city': 'Lyon',
            'siret': '12345678900012',
        }
        response = self.client.post('/api/v1/clients/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['company_name'], 'Maison Durand')
        self.assertEqual(response.data['projects_count'], 0)

    def test_company_name_is_required(self):
        response = self.client.post('/api/v1/clients/', {'city': 'Lyon'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('company_name', response.data)

    def test_category_must_be_a_client_category(self):
        category = TestDataFactory.create_category(name='Wood')
        response = self.client.post('/api/v1/clients/', {'company_name': 'Acme', 'category': category.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        category = TestDataFactory.create_category(name='Retail', kind=Category.KIND_CLIENT)
        response = self.client.post('/api/v1/clients/', {'company_name': 'Acme', 'category': category.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_search_clients(self):
        TestDataFactory.create_client(company_name='Maison Durand')
        TestDataFactory.create_client(company_name='Atelier Martin')
        response = self.client.get('/api/v1/clients/', {'search': 'durand'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['company_name'] for c in response.data], ['Maison Durand'])

    def test_update_client(self):
        client = TestDataFactory.create_client()
        response = self.client.patch(f'/api/v1/clients/{client.id}/', {'city': 'Paris'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        client.refresh_from_db()
        self.assertEqual(client.city, 'Paris')

    def test_client_with_projects_cannot_be_deleted(self):
        client = TestDataFactory.create_client()
        TestDataFactory.create_project(client=client)
        response = self.client.delete(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(Client.objects.filter(pk=client.pk).exists())

    def test_delete_client(self):
        client = TestDataFactory.create_client()
        response = self.client.delete(f'/api/v1/clients/{client.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Client.objects.filter(pk=client.pk).exists())
