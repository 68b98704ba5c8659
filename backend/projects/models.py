from django.core.validators import MinValueValidator
from django.db import models

from backend.catalog.models import Category, Product
from backend.core.models import User
from backend.parties.models import Client


class Project(models.Model):
    """Client engagement bundling products at quantities"""
    STATUS_DRAFT = 'draft'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_DONE = 'done'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_DONE, 'Done'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    name = models.CharField(max_length=200, db_index=True)
    reference = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    description = models.TextField(blank=True)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name='projects')
    category = models.ForeignKey(
        Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='projects',
        limit_choices_to={'kind': Category.KIND_PROJECT}
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    budget = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='projects')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.reference or 'NO-REF'})"

    @property
    def has_locked_prices(self):
        """Every status but draft prices its lines at frozen unit prices"""
        return self.status != self.STATUS_DRAFT

    class Meta:
        db_table = 'projects'
        ordering = ['-created_at']


class ProjectProduct(models.Model):
    """Product line of a project. frozen_unit_price is NULL while the project is a draft."""
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='lines')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='project_lines')
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    frozen_unit_price = models.DecimalField(max_digits=18, decimal_places=6, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.project.name} - {self.quantity} x {self.product.name}"

    @property
    def is_frozen(self):
        return self.frozen_unit_price is not None

    class Meta:
        db_table = 'project_products'
        unique_together = [['project', 'product']]
        indexes = [
            models.Index(fields=['product', 'frozen_unit_price'], name='idx_projprod_product_frozen'),
        ]
