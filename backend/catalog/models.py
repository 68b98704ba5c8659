from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal

from backend.pricing.cost_model import component_sale_price, quantize_price


class Category(models.Model):
    """Categories for components, products, clients and projects (one table, typed by kind)"""
    KIND_COMPONENT = 'component'
    KIND_PRODUCT = 'product'
    KIND_CLIENT = 'client'
    KIND_PROJECT = 'project'
    KIND_CHOICES = [
        (KIND_COMPONENT, 'Component'),
        (KIND_PRODUCT, 'Product'),
        (KIND_CLIENT, 'Client'),
        (KIND_PROJECT, 'Project'),
    ]

    kind = models.CharField(max_length=20, choices=KIND_CHOICES, db_index=True)
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200)
    color = models.CharField(max_length=7, blank=True, null=True)  # e.g. "#76715A"
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.kind})"

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['kind', 'name']
        unique_together = [['kind', 'slug']]


class Component(models.Model):
    """Purchasable raw part with a purchase price and a margin"""
    name = models.CharField(max_length=200, db_index=True)
    reference = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    category = models.ForeignKey(
        Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='components',
        limit_choices_to={'kind': Category.KIND_COMPONENT}
    )
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    margin_percent = models.DecimalField(max_digits=7, decimal_places=2, default=Decimal('30.00'))
    # Derived from purchase_price and margin_percent on every save
    sale_price = models.DecimalField(max_digits=18, decimal_places=6, default=Decimal('0.000000'), editable=False)
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    height = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    width = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    depth = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.reference or 'NO-REF'})"

    def compute_sale_price(self):
        return quantize_price(component_sale_price(self.purchase_price, self.margin_percent))

    def save(self, *args, **kwargs):
        """Keep the stored sale price in step with purchase price and margin"""
        self.sale_price = self.compute_sale_price()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and {'purchase_price', 'margin_percent'} & set(update_fields):
            kwargs['update_fields'] = set(update_fields) | {'sale_price'}
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'components'
        ordering = ['name']


class Product(models.Model):
    """Bill of materials (components x quantities) plus labor"""
    name = models.CharField(max_length=200, db_index=True)
    reference = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    description = models.TextField(blank=True)
    category = models.ForeignKey(
        Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products',
        limit_choices_to={'kind': Category.KIND_PRODUCT}
    )
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0'))])
    hours = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0'))])
    # Derived by backend.pricing.cascade.recompute_product_prices
    cost_price = models.DecimalField(max_digits=18, decimal_places=6, default=Decimal('0.000000'), editable=False)
    sale_price = models.DecimalField(max_digits=18, decimal_places=6, default=Decimal('0.000000'), editable=False)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.reference or 'NO-REF'})"

    class Meta:
        db_table = 'products'
        ordering = ['name']


class ProductComponent(models.Model):
    """Bill-of-materials line"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='bom_lines')
    component = models.ForeignKey(Component, on_delete=models.CASCADE, related_name='used_in_products')
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.quantity} x {self.component.name}"

    class Meta:
        db_table = 'product_components'
        unique_together = [['product', 'component']]
