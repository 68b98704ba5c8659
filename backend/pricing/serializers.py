from decimal import Decimal
from rest_framework import serializers
from backend.catalog.serializers import BomLineInputSerializer


class ProductPricePreviewSerializer(serializers.Serializer):
    """Unsaved product form: bill of materials and labor to price"""
    components = BomLineInputSerializer(many=True, required=False, default=list)
    hourly_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    hours = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
