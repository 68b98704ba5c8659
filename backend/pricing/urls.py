from django.urls import path
from . import views

urlpatterns = [
    path('pricing/components/<int:pk>/recompute/', views.component_recompute, name='pricing-component-recompute'),
    path('pricing/products/<int:pk>/recompute/', views.product_recompute, name='pricing-product-recompute'),
    path('pricing/products/preview/', views.product_price_preview, name='pricing-product-preview'),
]
