from django.contrib import admin
from .models import Category, Component, Product, ProductComponent
from backend.pricing.cascade import dispatch_component_cascade, notify_component_price_changed, recompute_product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'kind', 'slug', 'color', 'created_at']
    list_filter = ['kind', 'created_at']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    ordering = ['kind', 'name']


@admin.register(Component)
class ComponentAdmin(admin.ModelAdmin):
    list_display = ['name', 'reference', 'category', 'purchase_price', 'margin_percent', 'sale_price', 'is_active']
    list_filter = ['is_active', 'category', 'created_at']
    search_fields = ['name', 'reference']
    ordering = ['name']
    readonly_fields = ['sale_price', 'created_at', 'updated_at']

    def save_model(self, request, obj, form, change):
        old_sale_price = None
        if change:
            old_sale_price = Component.objects.filter(pk=obj.pk).values_list('sale_price', flat=True).first()
        super().save_model(request, obj, form, change)
        if change and {'purchase_price', 'margin_percent'} & set(form.changed_data):
            if old_sale_price is not None and obj.sale_price != old_sale_price:
                notify_component_price_changed(obj, old_sale_price, user=request.user)
            dispatch_component_cascade(obj.pk, user=request.user)


class ProductComponentInline(admin.TabularInline):
    model = ProductComponent
    extra = 1
    autocomplete_fields = ['component']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'reference', 'category', 'hourly_rate', 'hours', 'cost_price', 'sale_price', 'is_active']
    list_filter = ['is_active', 'category', 'created_at']
    search_fields = ['name', 'reference', 'description']
    ordering = ['name']
    readonly_fields = ['cost_price', 'sale_price', 'created_at', 'updated_at']
    inlines = [ProductComponentInline]

    def save_related(self, request, form, formsets, change):
        # BOM lines are saved with the inlines, so prices are recomputed afterwards
        super().save_related(request, form, formsets, change)
        recompute_product(form.instance.pk, user=request.user)
