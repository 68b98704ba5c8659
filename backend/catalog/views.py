import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404
from .models import Category, Component, Product, ProductComponent
from .serializers import (
    CategorySerializer, ComponentSerializer, ProductSerializer, ProductListSerializer,
    ProductComponentSerializer
)
from .filters import ComponentFilter, ProductFilter
from backend.core.utils import create_audit_log
from backend.pricing.cascade import (
    dispatch_component_cascade, dispatch_orphaned_products, notify_component_price_changed,
    recompute_product
)

logger = logging.getLogger(__name__)


# Category views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def category_list(request):
    """List categories, optionally of one kind (?kind=component)"""
    categories = Category.objects.all()
    kind = request.query_params.get('kind', None)
    if kind:
        categories = categories.filter(kind=kind)
    serializer = CategorySerializer(categories, many=True)
    return Response(serializer.data)


# Component views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def component_list_create(request):
    """List all components or create a new component"""
    if request.method == 'GET':
        queryset = Component.objects.select_related('category').annotate(
            annotated_products_count=Count('used_in_products', distinct=True)
        )
        filterset = ComponentFilter(request.query_params, queryset=queryset)
        serializer = ComponentSerializer(filterset.qs, many=True)
        return Response(serializer.data)
    else:
        serializer = ComponentSerializer(data=request.data)
        if serializer.is_valid():
            component = serializer.save()
            create_audit_log(request=request, action='create', instance=component)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


def _save_component(request, component, partial):
    """
    Save a component edit. A changed purchase price or margin is followed by
    the cascade to every product using the component, after commit.
    """
    serializer = ComponentSerializer(component, data=request.data, partial=partial)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    old_purchase_price = component.purchase_price
    old_margin = component.margin_percent
    old_sale_price = component.sale_price
    with transaction.atomic():
        component = serializer.save()
        price_inputs_changed = (
            component.purchase_price != old_purchase_price or component.margin_percent != old_margin
        )
        if price_inputs_changed:
            if component.sale_price != old_sale_price:
                notify_component_price_changed(component, old_sale_price, user=request.user)
            dispatch_component_cascade(component.pk, user=request.user)
        else:
            create_audit_log(request=request, action='update', instance=component)
    return Response(serializer.data)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def component_detail(request, pk):
    """Retrieve, update or delete a component"""
    component = get_object_or_404(Component, pk=pk)

    if request.method == 'GET':
        serializer = ComponentSerializer(component)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        return _save_component(request, component, partial=request.method == 'PATCH')
    else:  # DELETE
        component_id = component.pk
        component_name = component.name
        with transaction.atomic():
            product_ids = list(
                ProductComponent.objects.filter(component_id=component_id)
                .values_list('product_id', flat=True).distinct()
            )
            component.delete()
            create_audit_log(
                request=request,
                action='delete',
                model_name='Component',
                object_id=component_id,
                object_name=component_name,
                changes={'products': product_ids},
            )
            # BOM lines went with the component: reprice what used it
            dispatch_orphaned_products(product_ids, user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List all products or create a new product with its bill of materials"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('category').annotate(
            annotated_components_count=Count('bom_lines', distinct=True)
        )
        filterset = ProductFilter(request.query_params, queryset=queryset)
        serializer = ProductListSerializer(filterset.qs, many=True)
        return Response(serializer.data)
    else:
        serializer = ProductSerializer(data=request.data)
        if serializer.is_valid():
            with transaction.atomic():
                product = serializer.save()
                recompute_product(product.pk, user=request.user)
                create_audit_log(request=request, action='create', instance=product)
            product.refresh_from_db()
            return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product, pk=pk)

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            with transaction.atomic():
                product = serializer.save()
                # Cost and sale price follow the new BOM and labor in this request;
                # draft projects are notified after commit
                recompute_product(product.pk, user=request.user)
                create_audit_log(request=request, action='update', instance=product)
            product.refresh_from_db()
            return Response(ProductSerializer(product).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product_id = product.pk
        product_name = product.name
        product_reference = product.reference
        product.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Product',
            object_id=product_id,
            object_name=product_name,
            object_reference=product_reference,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_components(request, pk):
    """Bill of materials of a product"""
    product = get_object_or_404(Product, pk=pk)
    lines = product.bom_lines.select_related('component').order_by('component__name')
    serializer = ProductComponentSerializer(lines, many=True)
    return Response(serializer.data)
