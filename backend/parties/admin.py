from django.contrib import admin
from .models import Client


@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ['company_name', 'contact_last_name', 'contact_email', 'city', 'category', 'is_active', 'created_at']
    list_filter = ['is_active', 'category', 'country', 'created_at']
    search_fields = ['company_name', 'contact_first_name', 'contact_last_name', 'contact_email', 'vat_number', 'siret']
    ordering = ['company_name']
