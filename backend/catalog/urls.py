from django.urls import path
from . import views

urlpatterns = [
    path('categories/', views.category_list, name='category-list'),
    path('components/', views.component_list_create, name='component-list-create'),
    path('components/<int:pk>/', views.component_detail, name='component-detail'),
    path('products/', views.product_list_create, name='product-list-create'),
    path('products/<int:pk>/', views.product_detail, name='product-detail'),
    path('products/<int:pk>/components/', views.product_components, name='product-components'),
]
