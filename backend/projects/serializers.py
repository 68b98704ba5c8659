from django.db import transaction
from rest_framework import serializers
from backend.catalog.models import Category, Product
from backend.pricing.freeze import effective_unit_price, unit_price_for_new_line
from backend.pricing.totals import money
from backend.pricing.transitions import change_project_status
from .models import Project, ProjectProduct


class ProjectProductSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_reference = serializers.CharField(source='product.reference', read_only=True)
    unit_price = serializers.SerializerMethodField()
    line_total = serializers.SerializerMethodField()
    is_frozen = serializers.BooleanField(read_only=True)

    class Meta:
        model = ProjectProduct
        fields = ['id', 'product', 'product_name', 'product_reference', 'quantity',
                  'frozen_unit_price', 'unit_price', 'line_total', 'is_frozen']

    def get_unit_price(self, obj):
        return money(effective_unit_price(obj))

    def get_line_total(self, obj):
        return money(effective_unit_price(obj) * obj.quantity)


class ProjectLineInputSerializer(serializers.Serializer):
    """One {product, quantity} entry of a project write"""
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all())
    quantity = serializers.IntegerField(min_value=1)


class ProjectSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source='client.company_name', read_only=True)
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)
    lines = ProjectProductSerializer(many=True, read_only=True)
    products = ProjectLineInputSerializer(many=True, write_only=True, required=False)
    has_locked_prices = serializers.BooleanField(read_only=True)

    class Meta:
        model = Project
        fields = ['id', 'name', 'reference', 'description', 'client', 'client_name', 'category',
                  'category_name', 'status', 'has_locked_prices', 'start_date', 'end_date', 'budget',
                  'notes', 'is_active', 'created_by', 'created_by_username', 'lines', 'products',
                  'created_at', 'updated_at']
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate_category(self, value):
        if value is not None and value.kind != Category.KIND_PROJECT:
            raise serializers.ValidationError('Category must be a project category.')
        return value

    def validate_products(self, value):
        seen = set()
        for line in value:
            product_id = line['product'].pk
            if product_id in seen:
                raise serializers.ValidationError(f'Product {product_id} is listed more than once.')
            seen.add(product_id)
        return value

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date.'})
        return attrs

    def _user(self):
        request = self.context.get('request')
        return getattr(request, 'user', None)

    def _replace_lines(self, project, lines):
        """
        Replace the project's line set.

        Lines on a project past draft are frozen as they are attached; a
        product that stays on the project keeps the price it was frozen at.
        """
        existing = {link.product_id: link for link in project.lines.select_related('product')}
        keep = set()
        for line in lines:
            product = line['product']
            keep.add(product.pk)
            link = existing.get(product.pk)
            if link is None:
                ProjectProduct.objects.create(
                    project=project,
                    product=product,
                    quantity=line['quantity'],
                    frozen_unit_price=unit_price_for_new_line(project, product),
                )
                continue
            link.quantity = line['quantity']
            link.frozen_unit_price = unit_price_for_new_line(project, product, link.frozen_unit_price)
            link.save(update_fields=['quantity', 'frozen_unit_price'])

        for product_id, link in existing.items():
            if product_id not in keep:
                link.delete()

    def create(self, validated_data):
        lines = validated_data.pop('products', [])
        user = self._user()
        if user is not None and user.is_authenticated:
            validated_data['created_by'] = user
        with transaction.atomic():
            project = super().create(validated_data)
            self._replace_lines(project, lines)
        return project

    def update(self, instance, validated_data):
        lines = validated_data.pop('products', None)
        new_status = validated_data.pop('status', instance.status)
        with transaction.atomic():
            project = super().update(instance, validated_data)
            if lines is not None:
                self._replace_lines(project, lines)
            # Freezing or releasing prices is part of the same save: a failure rolls it all back
            if new_status != project.status:
                change_project_status(project, new_status, user=self._user())
        return project


class ProjectListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for project lists"""
    client_name = serializers.CharField(source='client.company_name', read_only=True)
    product_count = serializers.IntegerField(source='annotated_product_count', read_only=True, default=0)
    total_quantity = serializers.IntegerField(source='annotated_total_quantity', read_only=True, default=0)

    class Meta:
        model = Project
        fields = ['id', 'name', 'reference', 'client', 'client_name', 'category', 'status',
                  'start_date', 'end_date', 'budget', 'is_active', 'product_count', 'total_quantity',
                  'created_at']
