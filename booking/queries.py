from django.conf import settings
from django.db.models import Q

from .exceptions import NotFound
from .models import UserSlotSelection


def get_active_selection(selection_id):
    selection = UserSlotSelection.objects.active().with_schedule().filter(pk=selection_id).first()
    if selection is None:
        raise NotFound('Slot selection not found or has been cancelled.')
    return selection


def search_selections(term, limit=None):
    """Newest active selections whose userid or name contains ``term``."""
    limit = limit or settings.REGISTRATION_SEARCH_LIMIT
    return list(
        UserSlotSelection.objects.active()
        .with_schedule()
        .filter(Q(userid__icontains=term) | Q(name__icontains=term))
        .order_by('-created_at', '-id')[:limit]
    )
