"""Multi-step ledger operations for the admin surface."""
import logging
from collections import OrderedDict
from datetime import timedelta

from django.db import transaction
from django.db.models import Prefetch, Q, Sum
from django.utils import timezone

from booking.availability import remaining_capacity
from booking.models import (
    TIME_ORDERING, RegisterDate, RegisterSlot, RegisterTime, Setting, UserSlotSelection, time_ordering,
)

logger = logging.getLogger(__name__)

UPCOMING_WINDOW_DAYS = 7


def ledger_tree():
    """Every date with its times and slots, active or not."""
    return (
        RegisterDate.objects.order_by('date')
        .prefetch_related(
            Prefetch('times', queryset=RegisterTime.objects.order_by(*TIME_ORDERING)),
            Prefetch('times__slots', queryset=RegisterSlot.objects.with_active_count().order_by('id')),
        )
    )


def delete_date(date):
    """Delete a date together with its times, slots and selections."""
    with transaction.atomic():
        times = RegisterTime.objects.filter(date=date)
        slots = RegisterSlot.objects.filter(time__in=times)
        selection_count = UserSlotSelection.objects.filter(slot__in=slots).count()
        date_id = date.pk
        date.delete()
    logger.info("Deleted date_id=%s with %s selections", date_id, selection_count)


def delete_time(time):
    with transaction.atomic():
        selection_count = UserSlotSelection.objects.filter(slot__time=time).count()
        time_id = time.pk
        time.delete()
    logger.info("Deleted time_id=%s with %s selections", time_id, selection_count)


def save_all(settings_data, dates_data):
    """Upsert settings plus dates and their times as a single unit of work."""
    with transaction.atomic():
        setting = Setting.upsert(**settings_data)
        for item in dates_data:
            date, created = RegisterDate.objects.get_or_create(
                date=item['date'], defaults={'is_active': item['is_active']}
            )
            if not created and date.is_active != item['is_active']:
                date.is_active = item['is_active']
                date.save(update_fields=['is_active', 'updated_at'])
            for time_data in item.get('times', []):
                time, created = RegisterTime.objects.get_or_create(
                    date=date,
                    start_time=time_data['start_time'],
                    end_time=time_data['end_time'],
                    defaults={'is_active': time_data['is_active']},
                )
                if not created and time.is_active != time_data['is_active']:
                    time.is_active = time_data['is_active']
                    time.save(update_fields=['is_active', 'updated_at'])
    logger.info("Saved settings and %s dates", len(dates_data))
    return setting


def dashboard_stats(today=None):
    today = today or timezone.localdate()
    total_registrations = UserSlotSelection.objects.active().count()
    total_capacity = (
        RegisterSlot.objects.filter(is_active=True).aggregate(total=Sum('available_slots'))['total'] or 0
    )
    return {
        'total_dates': RegisterDate.objects.filter(is_active=True).count(),
        'total_time_slots': RegisterTime.objects.filter(is_active=True).count(),
        'total_slots': RegisterSlot.objects.filter(is_active=True).count(),
        'total_registrations': total_registrations,
        'total_capacity': total_capacity,
        'total_available_slots': remaining_capacity(total_capacity, total_registrations),
        'upcoming_sessions': RegisterDate.objects.filter(
            is_active=True,
            date__gte=today,
            date__lte=today + timedelta(days=UPCOMING_WINDOW_DAYS),
        ).count(),
    }


def _selection_row(selection):
    return {
        'id': selection.id,
        'userid': selection.userid,
        'name': selection.name,
        'position': selection.position,
        'department': selection.department,
        'register_type': selection.register_type,
    }


def registrations_tree(search=''):
    """Active selections grouped date -> time -> slot; branches without selections are left out."""
    selections = UserSlotSelection.objects.active().with_schedule()
    if search:
        selections = selections.filter(Q(userid__icontains=search) | Q(name__icontains=search))
    selections = selections.order_by('slot__time__date__date', *time_ordering('slot__time__'), 'slot_id', 'id')

    dates = OrderedDict()
    for selection in selections:
        slot = selection.slot
        time = slot.time
        date = time.date

        date_node = dates.setdefault(date.id, {
            'id': date.id,
            'date': date.date.isoformat(),
            'formatted_date': date.formatted_date,
            'times': OrderedDict(),
        })
        time_node = date_node['times'].setdefault(time.id, {
            'id': time.id,
            'time': time.time_display,
            'formatted_time': time.formatted_time,
            'slots': OrderedDict(),
        })
        slot_node = time_node['slots'].setdefault(slot.id, {
            'id': slot.id,
            'title': slot.title,
            'available_slots': slot.available_slots,
            'is_active': slot.is_active,
            'selections': [],
        })
        slot_node['selections'].append(_selection_row(selection))

    result = []
    for date_node in dates.values():
        times = []
        for time_node in date_node['times'].values():
            time_node['slots'] = list(time_node['slots'].values())
            times.append(time_node)
        date_node['times'] = times
        result.append(date_node)
    return result
