"""
URL configuration for the atelier pricing backend.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Atelier Management Admin Panel"
admin.site.site_title = "Atelier Management Admin Portal"
admin.site.index_title = "Components, products and projects"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.catalog.urls')),
    path('api/v1/', include('backend.parties.urls')),
    path('api/v1/', include('backend.projects.urls')),
    path('api/v1/', include('backend.pricing.urls')),
]
