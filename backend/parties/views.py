from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q, Count, ProtectedError
from django.shortcuts import get_object_or_404
from backend.core.utils import create_audit_log
from .models import Client
from .serializers import ClientSerializer


# Client views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def client_list_create(request):
    """List all clients or create a new client"""
    if request.method == 'GET':
        search = request.query_params.get('search', None)
        category = request.query_params.get('category', None)
        active = request.query_params.get('active', None)

        queryset = Client.objects.select_related('category').annotate(
            annotated_projects_count=Count('projects', distinct=True)
        )
        if search:
            queryset = queryset.filter(
                Q(company_name__icontains=search)
                | Q(contact_last_name__icontains=search)
                | Q(contact_email__icontains=search)
                | Q(city__icontains=search)
            )
        if category:
            queryset = queryset.filter(category_id=category)
        if active == 'true':
            queryset = queryset.filter(is_active=True)
        elif active == 'false':
            queryset = queryset.filter(is_active=False)
        serializer = ClientSerializer(queryset, many=True)
        return Response(serializer.data)
    else:
        serializer = ClientSerializer(data=request.data)
        if serializer.is_valid():
            client = serializer.save()
            create_audit_log(request=request, action='create', instance=client)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def client_detail(request, pk):
    """Retrieve, update or delete a client"""
    client = get_object_or_404(Client, pk=pk)

    if request.method == 'GET':
        serializer = ClientSerializer(client)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ClientSerializer(client, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', instance=client)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        client_id = client.pk
        client_name = client.company_name
        try:
            client.delete()
        except ProtectedError:
            return Response(
                {'error': 'This client still has projects. Archive it instead.'},
                status=status.HTTP_409_CONFLICT
            )
        create_audit_log(
            request=request,
            action='delete',
            model_name='Client',
            object_id=client_id,
            object_name=client_name,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
