import csv
import re

from django.db.models import Q

from booking.models import UserSlotSelection, time_ordering

EXPORT_COLUMNS = [
    ('date', 'Date'),
    ('formatted_date', 'Date (Formatted)'),
    ('time', 'Time'),
    ('formatted_time', 'Time (Formatted)'),
    ('slot_title', 'Slot Title'),
    ('userid', 'User ID'),
    ('name', 'Name'),
    ('position', 'Position'),
    ('department', 'Department'),
    ('register_type', 'Register Type'),
]

MAX_CELL_LENGTH = 32767

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')


def clean_string(value):
    """Strip control characters and surrounding whitespace from a cell value."""
    if value is None:
        return ''
    value = _CONTROL_CHARS.sub('', str(value)).strip()
    return value[:MAX_CELL_LENGTH]


def export_queryset(search=None, department=None, register_type=None):
    selections = UserSlotSelection.objects.active().with_schedule()
    if search:
        selections = selections.filter(Q(userid__icontains=search) | Q(name__icontains=search))
    if department:
        selections = selections.filter(department=department)
    if register_type:
        selections = selections.filter(register_type=register_type)
    return selections.order_by('slot__time__date__date', *time_ordering('slot__time__'), 'slot_id', 'id')


def export_rows(search=None, department=None, register_type=None):
    for selection in export_queryset(search, department, register_type).iterator(chunk_size=100):
        slot = selection.slot
        time = slot.time
        yield {
            'date': time.date.date.isoformat(),
            'formatted_date': time.date.formatted_date,
            'time': time.time_display,
            'formatted_time': time.formatted_time,
            'slot_title': clean_string(slot.title),
            'userid': clean_string(selection.userid),
            'name': clean_string(selection.name),
            'position': clean_string(selection.position),
            'department': clean_string(selection.department),
            'register_type': clean_string(selection.register_type),
        }


def write_csv(stream, rows):
    """Write the header and ``rows`` to ``stream``; returns the number of data rows."""
    writer = csv.writer(stream)
    writer.writerow([heading for _, heading in EXPORT_COLUMNS])
    count = 0
    for row in rows:
        writer.writerow([row[key] for key, _ in EXPORT_COLUMNS])
        count += 1
    return count
