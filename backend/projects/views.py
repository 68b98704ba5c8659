import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Count, Sum
from django.shortcuts import get_object_or_404
from backend.core.utils import create_audit_log
from backend.pricing.exceptions import PricingError
from backend.pricing.totals import component_requirements, money, project_totals, quote_lines
from backend.pricing.transitions import change_project_status
from .models import Project
from .serializers import ProjectSerializer, ProjectListSerializer

logger = logging.getLogger(__name__)


def pricing_error_response(exc):
    payload = {'error': exc.message}
    if getattr(exc, 'field', None):
        payload['field'] = exc.field
    return Response(payload, status=exc.status_code)


# Project views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def project_list_create(request):
    """List all projects or create a new project with its product lines"""
    if request.method == 'GET':
        queryset = Project.objects.select_related('client').annotate(
            annotated_product_count=Count('lines', distinct=True),
            annotated_total_quantity=Sum('lines__quantity', default=0),
        )
        search = request.query_params.get('search', None)
        status_filter = request.query_params.get('status', None)
        client = request.query_params.get('client', None)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(reference__icontains=search)
                | Q(client__company_name__icontains=search)
            )
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if client:
            queryset = queryset.filter(client_id=client)
        serializer = ProjectListSerializer(queryset, many=True)
        return Response(serializer.data)
    else:
        serializer = ProjectSerializer(data=request.data, context={'request': request})
        if serializer.is_valid():
            project = serializer.save()
            create_audit_log(request=request, action='create', instance=project)
            return Response(ProjectSerializer(project).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def project_detail(request, pk):
    """Retrieve, update or delete a project"""
    project = get_object_or_404(Project, pk=pk)

    if request.method == 'GET':
        serializer = ProjectSerializer(project)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProjectSerializer(
            project, data=request.data, partial=request.method == 'PATCH', context={'request': request}
        )
        if serializer.is_valid():
            try:
                project = serializer.save()
            except PricingError as e:
                logger.warning(f"Project {pk} was not saved: {e}")
                return pricing_error_response(e)
            create_audit_log(request=request, action='update', instance=project)
            project.refresh_from_db()
            return Response(ProjectSerializer(project).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        project_id = project.pk
        project_name = project.name
        project_reference = project.reference
        project.delete()
        create_audit_log(
            request=request,
            action='delete',
            model_name='Project',
            object_id=project_id,
            object_name=project_name,
            object_reference=project_reference,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def project_change_status(request, pk):
    """Move a project to another status, freezing or releasing its line prices"""
    project = get_object_or_404(Project, pk=pk)
    new_status = request.data.get('status')
    if not new_status:
        return Response({'status': ['This field is required.']}, status=status.HTTP_400_BAD_REQUEST)
    old_status = project.status
    try:
        action = change_project_status(project, new_status, user=request.user)
    except PricingError as e:
        logger.warning(f"Project {pk} stays {old_status}: {e}")
        return pricing_error_response(e)
    return Response({
        'id': project.pk,
        'old_status': old_status,
        'status': project.status,
        'price_action': action,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_totals_view(request, pk):
    """Sale/cost totals, margin and counters of a project"""
    project = get_object_or_404(Project, pk=pk)
    totals = project_totals(project.pk)
    return Response(totals.as_dict())


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_quote(request, pk):
    """Priced lines of a project with their grand total"""
    project = get_object_or_404(Project.objects.select_related('client'), pk=pk)
    lines, total = quote_lines(project.pk)
    return Response({
        'project_id': project.pk,
        'project_name': project.name,
        'project_reference': project.reference,
        'client_name': project.client.company_name,
        'status': project.status,
        'lines': [line.as_dict() for line in lines],
        'total': money(total),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def project_component_requirements(request, pk):
    """Components needed to build the project, by category (?categories=1,2 to restrict)"""
    project = get_object_or_404(Project, pk=pk)
    categories_param = request.query_params.get('categories', None)
    category_ids = None
    if categories_param:
        try:
            category_ids = [int(c) for c in categories_param.split(',') if c.strip()]
        except ValueError:
            return Response(
                {'error': 'categories must be a comma-separated list of ids'},
                status=status.HTTP_400_BAD_REQUEST
            )
    groups = component_requirements(project.pk, category_ids=category_ids)
    return Response({
        'project_id': project.pk,
        'groups': [group.as_dict() for group in groups],
    })
