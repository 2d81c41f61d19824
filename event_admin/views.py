import logging

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from booking.allocator import allocation_lock, cancel_selection
from booking.models import RegisterDate, RegisterSlot, RegisterTime, Setting
from booking.utils import invalidate_availability_cache

from . import ledger
from .exports import export_rows, write_csv
from .serializers import (
    ExportFilterSerializer,
    LedgerDateSerializer,
    MassAddSlotSerializer,
    RegisterDateSerializer,
    RegisterSlotSerializer,
    RegisterTimeSerializer,
    SaveAllSerializer,
    SettingSerializer,
)

logger = logging.getLogger(__name__)


def _saved(serializer, message, status_code=status.HTTP_200_OK, **extra):
    invalidate_availability_cache()
    return Response({'success': True, 'message': message, 'data': serializer.data, **extra}, status=status_code)


def _deleted(message):
    invalidate_availability_cache()
    return Response({'success': True, 'message': message})


@api_view(['GET'])
@permission_classes([IsAdminUser])
def dashboard(request):
    return Response({'success': True, 'stats': ledger.dashboard_stats()})


@api_view(['GET', 'POST'])
@permission_classes([IsAdminUser])
def settings_view(request):
    if request.method == 'GET':
        return Response({'success': True, 'data': SettingSerializer(Setting.load()).data})

    serializer = SettingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    logger.info("Settings saved by %s", request.user)
    return _saved(serializer, 'Settings saved successfully')


@api_view(['POST'])
@permission_classes([IsAdminUser])
def save_all(request):
    serializer = SaveAllSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    ledger.save_all(serializer.validated_data['settings'], serializer.validated_data.get('dates', []))
    invalidate_availability_cache()
    return Response({
        'success': True,
        'message': 'All settings saved successfully',
        'settings': SettingSerializer(Setting.load()).data,
        'dates': LedgerDateSerializer(ledger.ledger_tree(), many=True).data,
    })


# Date Views
@api_view(['GET', 'POST'])
@permission_classes([IsAdminUser])
def date_list(request):
    if request.method == 'GET':
        return Response({
            'success': True,
            'settings': SettingSerializer(Setting.load()).data,
            'dates': LedgerDateSerializer(ledger.ledger_tree(), many=True).data,
        })

    serializer = RegisterDateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    date = serializer.save()
    logger.info("Created date_id=%s (%s)", date.pk, date.date)
    return _saved(serializer, 'Date added successfully', status.HTTP_201_CREATED)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAdminUser])
def date_detail(request, pk):
    date = get_object_or_404(RegisterDate, pk=pk)

    if request.method == 'DELETE':
        ledger.delete_date(date)
        return _deleted('Date deleted successfully')

    serializer = RegisterDateSerializer(date, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    logger.info("Updated date_id=%s is_active=%s", date.pk, date.is_active)
    return _saved(serializer, 'Date updated successfully')


# Time Views
@api_view(['POST'])
@permission_classes([IsAdminUser])
def time_create(request):
    serializer = RegisterTimeSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    time = serializer.save()
    logger.info("Created time_id=%s on date_id=%s", time.pk, time.date_id)
    return _saved(serializer, 'Time slot added successfully', status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAdminUser])
def time_count(request):
    return Response({'success': True, 'count': RegisterTime.objects.filter(is_active=True).count()})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAdminUser])
def time_detail(request, pk):
    time = get_object_or_404(RegisterTime, pk=pk)

    if request.method == 'DELETE':
        ledger.delete_time(time)
        return _deleted('Time slot deleted successfully')

    serializer = RegisterTimeSerializer(time, data=request.data, partial=True)
    serializer.is_valid(raise_exception=True)
    serializer.save()
    logger.info("Updated time_id=%s", time.pk)
    return _saved(serializer, 'Time slot updated successfully')


# Slot Views
@api_view(['POST'])
@permission_classes([IsAdminUser])
def slot_create(request):
    serializer = RegisterSlotSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    slot = serializer.save()
    logger.info("Created slot_id=%s on time_id=%s capacity=%s", slot.pk, slot.time_id, slot.available_slots)
    return _saved(serializer, 'Slot added successfully', status.HTTP_201_CREATED)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAdminUser])
def slot_detail(request, pk):
    slot = get_object_or_404(RegisterSlot, pk=pk)

    if request.method == 'DELETE':
        slot_id = slot.pk
        slot.delete()
        logger.info("Deleted slot_id=%s", slot_id)
        return _deleted('Slot deleted successfully')

    # capacity checks must not interleave with allocations
    with allocation_lock():
        serializer = RegisterSlotSerializer(slot, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
    logger.info("Updated slot_id=%s capacity=%s is_active=%s", slot.pk, slot.available_slots, slot.is_active)
    return _saved(serializer, 'Slot updated successfully')


@api_view(['POST'])
@permission_classes([IsAdminUser])
def slot_mass_add(request):
    serializer = MassAddSlotSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    slots = serializer.save()
    title = serializer.validated_data['title']
    capacity = serializer.validated_data['available_slots']
    logger.info("Mass-added slot '%s' (capacity %s) to %s times", title, capacity, len(slots))
    invalidate_availability_cache()

    if len(slots) == 1:
        message = f"Successfully created slot '{title}' with {capacity} capacity"
    else:
        message = (
            f"Successfully created {len(slots)} slots '{title}' with {capacity} capacity each "
            f"across all selected time slots"
        )
    return Response({
        'success': True,
        'message': message,
        'created': [{'time_id': slot.time_id, 'slot_id': slot.id} for slot in slots],
    }, status=status.HTTP_201_CREATED)


# Registration Views
@api_view(['GET'])
@permission_classes([IsAdminUser])
def registration_list(request):
    search = (request.query_params.get('q') or '').strip()
    return Response({'success': True, 'search': search, 'registrations': ledger.registrations_tree(search)})


@api_view(['DELETE'])
@permission_classes([IsAdminUser])
def registration_detail(request, pk):
    cancel_selection(pk)
    return Response({'success': True, 'message': 'Registration deleted successfully'})


@api_view(['GET'])
@permission_classes([IsAdminUser])
def registration_export(request):
    filters = ExportFilterSerializer(data=request.query_params)
    filters.is_valid(raise_exception=True)
    params = filters.validated_data

    filename = f"registrations_{timezone.localtime():%Y%m%d_%H%M%S}.csv"
    response = HttpResponse(content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    # BOM so spreadsheet apps pick up UTF-8 names
    response.write('\ufeff')
    count = write_csv(response, export_rows(
        search=(params.get('search') or '').strip(),
        department=params.get('department') or '',
        register_type=params.get('register_type') or '',
    ))
    logger.info("Exported %s registrations", count)
    return response
