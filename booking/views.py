import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.serializers import ValidationError

from .allocator import register_selection
from .availability import get_availability
from .directory import DirectoryUnreachable, DirectoryUserNotFound, get_directory_client
from .exceptions import DirectoryUnavailable, NotFound
from .identity import REGULAR, RegularIdentity
from .queries import get_active_selection, search_selections
from .serializers import RegisterSlotSerializer, SearchSerializer, SlotSelectionSerializer, UserLookupSerializer

logger = logging.getLogger(__name__)


def _lookup(userid):
    try:
        return get_directory_client().lookup_user(userid)
    except DirectoryUnreachable as exc:
        raise DirectoryUnavailable(str(exc))


def _confirm_regular_identity(identity):
    """Replace a self-reported regular identity with the directory's record."""
    try:
        user = _lookup(identity.userid)
    except DirectoryUserNotFound:
        raise ValidationError({'userid': 'User not found'})
    return RegularIdentity(
        userid=identity.userid,
        name=user.name or identity.name,
        department=user.department or identity.department,
        position=user.position,
    )


@api_view(['GET'])
@permission_classes([AllowAny])
def availability(request):
    payload = get_availability()
    return Response({'success': True, **payload})


@api_view(['POST'])
@permission_classes([AllowAny])
def get_user(request):
    serializer = UserLookupSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    userid = serializer.validated_data['user_id']

    try:
        user = _lookup(userid)
    except DirectoryUserNotFound as exc:
        raise NotFound(str(exc))

    return Response({
        'success': True,
        'user': {
            'name': user.name,
            'department': user.department,
            'position': user.position,
        },
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def register_slot(request):
    serializer = RegisterSlotSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    identity = serializer.validated_data['identity']
    time_id = serializer.validated_data['time_id']

    if identity.register_type == REGULAR and settings.DIRECTORY_VERIFY_REGISTRATIONS:
        identity = _confirm_regular_identity(identity)

    selection = register_selection(identity, time_id)
    slot = selection.slot
    time = slot.time

    return Response({
        'success': True,
        'message': 'Successfully registered for the selected time slot!',
        'slot_selection_id': selection.id,
        'userid': selection.userid,
        'slot_info': {
            'slot_id': slot.id,
            'slot_title': slot.title,
            'time_id': time.id,
            'time': time.formatted_time,
            'date': time.date.formatted_date,
        },
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([AllowAny])
def get_slot_selection(request, pk):
    selection = get_active_selection(pk)
    return Response({'success': True, 'slot_selection': SlotSelectionSerializer(selection).data})


@api_view(['POST'])
@permission_classes([AllowAny])
def search_registrations(request):
    serializer = SearchSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    registrations = search_selections(serializer.validated_data['search'])
    data = SlotSelectionSerializer(registrations, many=True).data
    return Response({'success': True, 'registrations': data, 'count': len(data)})
