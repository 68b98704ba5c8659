import django_filters
from django.db.models import Q
from .models import Component, Product


class ActiveFilterMixin:
    def filter_active(self, queryset, name, value):
        """'true' / 'false' on is_active; anything else leaves the queryset alone"""
        if value == 'true':
            return queryset.filter(is_active=True)
        if value == 'false':
            return queryset.filter(is_active=False)
        return queryset


class ComponentFilter(ActiveFilterMixin, django_filters.FilterSet):
    """Filter for Component model using django-filter"""

    # Searches name, reference and category name
    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    active = django_filters.CharFilter(method='filter_active', label='Active')
    min_price = django_filters.NumberFilter(field_name='purchase_price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='purchase_price', lookup_expr='lte')

    class Meta:
        model = Component
        fields = ['search', 'category', 'active', 'min_price', 'max_price']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        query = Q()
        # Every word must appear somewhere, in any order
        for word in value.split():
            query &= (
                Q(name__icontains=word)
                | Q(reference__icontains=word)
                | Q(category__name__icontains=word)
            )
        return queryset.filter(query)


class ProductFilter(ActiveFilterMixin, django_filters.FilterSet):
    """Filter for Product model using django-filter"""

    search = django_filters.CharFilter(method='filter_search', label='Search')
    category = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    active = django_filters.CharFilter(method='filter_active', label='Active')
    component = django_filters.NumberFilter(field_name='bom_lines__component', lookup_expr='exact', distinct=True)

    class Meta:
        model = Product
        fields = ['search', 'category', 'active', 'component']

    def filter_search(self, queryset, name, value):
        if not value:
            return queryset
        query = Q()
        for word in value.split():
            query &= (
                Q(name__icontains=word)
                | Q(reference__icontains=word)
                | Q(description__icontains=word)
            )
        return queryset.filter(query)
