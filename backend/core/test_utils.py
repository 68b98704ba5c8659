"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.utils.text import slugify
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.catalog.models import Category, Component, Product, ProductComponent
from backend.parties.models import Client
from backend.projects.models import Project, ProjectProduct
from backend.pricing.cascade import recompute_product_prices
from decimal import Decimal
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        return user

    @staticmethod
    def create_category(name=None, kind=Category.KIND_COMPONENT, color=None):
        """Create a test category of the given kind"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            kind=kind,
            name=name,
            slug=slugify(name),
            color=color
        )

    @staticmethod
    def create_component(name=None, purchase_price='10.00', margin_percent='20.00', category=None, reference=None):
        """Create a test component (sale price is derived on save)"""
        if not name:
            name = f'Component_{TestDataFactory.random_string(6)}'
        if not reference:
            reference = f'CMP-{TestDataFactory.random_string(6).upper()}'
        return Component.objects.create(
            name=name,
            reference=reference,
            category=category,
            purchase_price=Decimal(str(purchase_price)),
            margin_percent=Decimal(str(margin_percent))
        )

    @staticmethod
    def create_product(name=None, components=None, hourly_rate='0.00', hours='0.00', reference=None):
        """
        Create a test product with its bill of materials and stored prices.
        components: list of (component, quantity) tuples
        """
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not reference:
            reference = f'PRD-{TestDataFactory.random_string(6).upper()}'
        product = Product.objects.create(
            name=name,
            reference=reference,
            hourly_rate=Decimal(str(hourly_rate)),
            hours=Decimal(str(hours))
        )
        for component, quantity in components or []:
            ProductComponent.objects.create(product=product, component=component, quantity=quantity)
        return recompute_product_prices(product.pk)

    @staticmethod
    def create_client(company_name=None, email=None):
        """Create a test client"""
        if not company_name:
            company_name = f'Client_{TestDataFactory.random_string(6)}'
        return Client.objects.create(
            company_name=company_name,
            contact_email=email or f'{slugify(company_name)}@test.com',
            city='Lyon',
            country='France'
        )

    @staticmethod
    def create_project(client=None, name=None, status=Project.STATUS_DRAFT, created_by=None):
        """Create a test project"""
        if not client:
            client = TestDataFactory.create_client()
        if not name:
            name = f'Project_{TestDataFactory.random_string(6)}'
        return Project.objects.create(
            name=name,
            reference=f'PRJ-{TestDataFactory.random_string(6).upper()}',
            client=client,
            status=status,
            created_by=created_by
        )

    @staticmethod
    def add_product_to_project(project, product, quantity=1, frozen_unit_price=None):
        """Create a project line"""
        return ProjectProduct.objects.create(
            project=project,
            product=product,
            quantity=quantity,
            frozen_unit_price=frozen_unit_price
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
