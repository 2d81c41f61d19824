import logging

from django.db.models import Prefetch
from django.utils import timezone

from .models import TIME_ORDERING, RegisterDate, RegisterTime, Setting
from .utils import get_cached_availability, set_cached_availability

logger = logging.getLogger(__name__)


def remaining_capacity(total_capacity, registered_count):
    return max(0, total_capacity - registered_count)


def settings_payload(setting, today=None):
    return {
        'title': setting.title,
        'register_start_date': setting.register_start_date.isoformat() if setting.register_start_date else None,
        'register_end_date': setting.register_end_date.isoformat() if setting.register_end_date else None,
        'is_registration_open': setting.is_registration_open(today),
    }


def _time_payload(time):
    return {
        'id': time.id,
        'time': time.time_display,
        'formatted_time': time.formatted_time,
        'start_time': time.start_time.strftime('%H:%M') if time.start_time else None,
        'end_time': time.end_time.strftime('%H:%M') if time.end_time else None,
        'total_capacity': time.total_capacity,
        'registered_count': time.registered_count,
        'remaining': remaining_capacity(time.total_capacity, time.registered_count),
    }


def build_availability(today=None):
    """Active dates (ascending) with their active times and remaining capacity."""
    today = today or timezone.localdate()
    active_times = RegisterTime.objects.filter(is_active=True).with_capacity().order_by(*TIME_ORDERING)
    dates = (
        RegisterDate.objects.filter(is_active=True, times__is_active=True)
        .distinct()
        .order_by('date')
        .prefetch_related(Prefetch('times', queryset=active_times, to_attr='active_times'))
    )
    return {
        'settings': settings_payload(Setting.load(), today),
        'dates': [
            {
                'id': date.id,
                'date': date.date.isoformat(),
                'formatted_date': date.formatted_date,
                'times': [_time_payload(time) for time in date.active_times],
            }
            for date in dates
        ],
    }


def get_availability():
    """Return the availability payload, preferring the short-lived cache snapshot."""
    cached = get_cached_availability()
    if cached is not None:
        return cached
    payload = build_availability()
    set_cached_availability(payload)
    return payload
