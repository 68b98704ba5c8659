from django.db import transaction
from rest_framework import serializers
from .models import Category, Component, Product, ProductComponent


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'kind', 'name', 'slug', 'color', 'created_at', 'updated_at']


class ComponentSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    products_count = serializers.SerializerMethodField()

    class Meta:
        model = Component
        fields = ['id', 'name', 'reference', 'category', 'category_name', 'purchase_price',
                  'margin_percent', 'sale_price', 'weight', 'height', 'width', 'depth',
                  'notes', 'is_active', 'products_count', 'created_at', 'updated_at']
        read_only_fields = ['sale_price', 'created_at', 'updated_at']

    def get_products_count(self, obj):
        # Use annotated value when the list view provides it
        if hasattr(obj, 'annotated_products_count'):
            return obj.annotated_products_count
        return obj.used_in_products.count()

    def validate_category(self, value):
        if value is not None and value.kind != Category.KIND_COMPONENT:
            raise serializers.ValidationError('Category must be a component category.')
        return value


class ProductComponentSerializer(serializers.ModelSerializer):
    component_name = serializers.CharField(source='component.name', read_only=True)
    component_reference = serializers.CharField(source='component.reference', read_only=True)
    purchase_price = serializers.DecimalField(source='component.purchase_price', max_digits=12, decimal_places=2, read_only=True)
    sale_price = serializers.DecimalField(source='component.sale_price', max_digits=18, decimal_places=6, read_only=True)

    class Meta:
        model = ProductComponent
        fields = ['id', 'component', 'component_name', 'component_reference', 'quantity',
                  'purchase_price', 'sale_price']


class BomLineInputSerializer(serializers.Serializer):
    """One {component, quantity} entry of a product write"""
    component = serializers.PrimaryKeyRelatedField(queryset=Component.objects.all())
    quantity = serializers.IntegerField(min_value=1)


class ProductSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    bom_lines = ProductComponentSerializer(many=True, read_only=True)
    components = BomLineInputSerializer(many=True, write_only=True, required=False)
    margin_amount = serializers.SerializerMethodField()
    margin_percent = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'reference', 'description', 'category', 'category_name',
                  'hourly_rate', 'hours', 'cost_price', 'sale_price', 'margin_amount',
                  'margin_percent', 'is_active', 'bom_lines', 'components',
                  'created_at', 'updated_at']
        read_only_fields = ['cost_price', 'sale_price', 'created_at', 'updated_at']

    def _margin(self, obj):
        from backend.pricing.cost_model import margin
        return margin(obj.cost_price, obj.sale_price)

    def get_margin_amount(self, obj):
        from backend.pricing.totals import money
        return money(self._margin(obj).amount)

    def get_margin_percent(self, obj):
        from backend.pricing.totals import money
        return money(self._margin(obj).percent)

    def validate_category(self, value):
        if value is not None and value.kind != Category.KIND_PRODUCT:
            raise serializers.ValidationError('Category must be a product category.')
        return value

    def validate_components(self, value):
        seen = set()
        for line in value:
            component_id = line['component'].pk
            if component_id in seen:
                raise serializers.ValidationError(f'Component {component_id} is listed more than once.')
            seen.add(component_id)
        return value

    def _replace_bom(self, product, lines):
        product.bom_lines.all().delete()
        ProductComponent.objects.bulk_create([
            ProductComponent(product=product, component=line['component'], quantity=line['quantity'])
            for line in lines
        ])

    def create(self, validated_data):
        lines = validated_data.pop('components', [])
        with transaction.atomic():
            product = super().create(validated_data)
            self._replace_bom(product, lines)
        return product

    def update(self, instance, validated_data):
        lines = validated_data.pop('components', None)
        with transaction.atomic():
            product = super().update(instance, validated_data)
            # Omitted on PATCH: keep the current bill of materials
            if lines is not None:
                self._replace_bom(product, lines)
        return product


class ProductListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for product lists"""
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    components_count = serializers.IntegerField(source='annotated_components_count', read_only=True, default=0)

    class Meta:
        model = Product
        fields = ['id', 'name', 'reference', 'category', 'category_name', 'hourly_rate', 'hours',
                  'cost_price', 'sale_price', 'is_active', 'components_count']
