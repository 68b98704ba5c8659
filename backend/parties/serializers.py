from rest_framework import serializers
from backend.catalog.models import Category
from .models import Client


class ClientSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    projects_count = serializers.SerializerMethodField()

    class Meta:
        model = Client
        fields = ['id', 'company_name', 'contact_first_name', 'contact_last_name', 'contact_email',
                  'contact_phone', 'address_line1', 'address_line2', 'postal_code', 'city', 'country',
                  'vat_number', 'siret', 'category', 'category_name', 'notes', 'is_active',
                  'projects_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_projects_count(self, obj):
        if hasattr(obj, 'annotated_projects_count'):
            return obj.annotated_projects_count
        return obj.projects.count()

    def validate_category(self, value):
        if value is not None and value.kind != Category.KIND_CLIENT:
            raise serializers.ValidationError('Category must be a client category.')
        return value
