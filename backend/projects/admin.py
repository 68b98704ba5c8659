from django.contrib import admin
from .models import Project, ProjectProduct


class ProjectProductInline(admin.TabularInline):
    model = ProjectProduct
    extra = 0
    readonly_fields = ['frozen_unit_price']


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ['name', 'reference', 'client', 'status', 'start_date', 'end_date', 'is_active', 'created_at']
    list_filter = ['status', 'is_active', 'category', 'created_at']
    search_fields = ['name', 'reference', 'client__company_name']
    ordering = ['-created_at']
    # Status goes through the API so prices are frozen/released with it
    readonly_fields = ['status', 'created_by', 'created_at', 'updated_at']
    inlines = [ProjectProductInline]
