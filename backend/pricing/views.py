import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.shortcuts import get_object_or_404
from backend.catalog.models import Component, Product
from .cascade import on_component_changed, on_product_changed, recompute_product_prices, refresh_component_sale_price
from .cost_model import LineItem, labor_cost, margin, product_cost, product_sale_price
from .exceptions import PricingError
from .serializers import ProductPricePreviewSerializer
from .totals import money

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def component_recompute(request, pk):
    """
    Recompute a component's sale price and run the cascade now.

    Returns the cascade result: products recomputed, draft projects
    following them, and any product that could not be recomputed.
    """
    component = get_object_or_404(Component, pk=pk)
    with transaction.atomic():
        refresh_component_sale_price(component.pk, user=request.user)
    result = on_component_changed(component.pk, user=request.user)
    return Response(result.as_dict())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_recompute(request, pk):
    """Recompute a product's cost and sale price and notify its draft projects"""
    product = get_object_or_404(Product, pk=pk)
    try:
        with transaction.atomic():
            recompute_product_prices(product.pk, user=request.user)
    except PricingError as e:
        logger.error(f"Manual recompute of product {pk} failed: {e}")
        return Response({'error': e.message}, status=e.status_code)
    result = on_product_changed(product.pk)
    result.recomputed_products.append(product.pk)
    return Response(result.as_dict())


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_price_preview(request):
    """Price an unsaved bill of materials and labor, as the product form shows it"""
    serializer = ProductPricePreviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    items = [
        LineItem(
            purchase_price=line['component'].purchase_price,
            margin_percent=line['component'].margin_percent,
            quantity=line['quantity'],
        )
        for line in data['components']
    ]
    cost = product_cost(items, data['hourly_rate'], data['hours'])
    sale = product_sale_price(items, data['hourly_rate'], data['hours'])
    result = margin(cost, sale)
    return Response({
        'components_sale_total': money(sale - labor_cost(data['hourly_rate'], data['hours'])),
        'labor_cost': money(labor_cost(data['hourly_rate'], data['hours'])),
        'cost_price': money(cost),
        'sale_price': money(sale),
        'margin_amount': money(result.amount),
        'margin_percent': money(result.percent),
    })
