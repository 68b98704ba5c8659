from django.urls import path
from . import views

urlpatterns = [
    path('projects/', views.project_list_create, name='project-list-create'),
    path('projects/<int:pk>/', views.project_detail, name='project-detail'),
    path('projects/<int:pk>/status/', views.project_change_status, name='project-change-status'),
    path('projects/<int:pk>/totals/', views.project_totals_view, name='project-totals'),
    path('projects/<int:pk>/quote/', views.project_quote, name='project-quote'),
    path('projects/<int:pk>/component-requirements/', views.project_component_requirements, name='project-component-requirements'),
]
