"""Slot allocation.

Every allocation attempt runs inside one transaction that first takes the
allocation lock, so the "count active selections, then insert" sequence can
never interleave with another attempt. On PostgreSQL the lock is a
transaction-scoped advisory lock (released on commit/rollback); other
backends fall back to a process-wide lock.
"""
import logging
import threading
from contextlib import contextmanager

from django.db import IntegrityError, connection, transaction
from django.db.models import Count

from .exceptions import AlreadyRegistered, NoCapacity, NotFound, TimeUnavailable
from .models import RegisterSlot, RegisterTime, UserSlotSelection
from .utils import invalidate_availability_cache

logger = logging.getLogger(__name__)

ALLOCATION_LOCK_KEY = 42

_process_lock = threading.Lock()


def _acquire_db_lock():
    """Block until the transactional advisory lock is held (PostgreSQL only)."""
    with connection.cursor() as cursor:
        cursor.execute('SELECT pg_advisory_xact_lock(%s);', [ALLOCATION_LOCK_KEY])


@contextmanager
def allocation_lock():
    if connection.vendor == 'postgresql':
        with transaction.atomic():
            _acquire_db_lock()
            yield
    else:
        with _process_lock:
            with transaction.atomic():
                yield


def _first_open_slot(time):
    slots = list(
        RegisterSlot.objects.select_for_update()
        .filter(time=time, is_active=True)
        .order_by('id')
    )
    if not slots:
        return None

    counts = dict(
        UserSlotSelection.objects.filter(slot__in=slots, is_delete=False)
        .order_by()
        .values('slot')
        .annotate(total=Count('pk'))
        .values_list('slot', 'total')
    )
    for slot in slots:
        if counts.get(slot.pk, 0) < slot.available_slots:
            return slot
    return None


def register_selection(identity, time_id):
    """Reserve the first open slot under ``time_id`` for ``identity``.

    Raises ``AlreadyRegistered``, ``TimeUnavailable`` or ``NoCapacity``; on
    success returns the new selection with its slot, time and date loaded.
    """
    userid = identity.userid
    try:
        with allocation_lock():
            if UserSlotSelection.objects.active().filter(userid=userid).exists():
                raise AlreadyRegistered()

            time = RegisterTime.objects.select_related('date').filter(pk=time_id).first()
            if time is None or not time.is_active:
                raise TimeUnavailable()

            slot = _first_open_slot(time)
            if slot is None:
                raise NoCapacity()

            selection = UserSlotSelection.objects.create(
                slot=slot,
                userid=userid,
                name=identity.name,
                department=identity.department or '',
                position=identity.position or '',
                register_type=identity.register_type,
                is_delete=False,
            )
    except IntegrityError:
        # partial unique index on active userid caught a concurrent duplicate
        logger.warning("Duplicate active registration rejected for userid=%s", userid)
        raise AlreadyRegistered()
    except (AlreadyRegistered, TimeUnavailable, NoCapacity) as exc:
        logger.info("Registration rejected for userid=%s time_id=%s: %s", userid, time_id, exc.default_code)
        raise

    invalidate_availability_cache()
    logger.info(
        "Registered userid=%s (%s) into slot_id=%s time_id=%s selection_id=%s",
        userid, identity.register_type, slot.pk, time.pk, selection.pk,
    )
    selection.slot = slot
    slot.time = time
    return selection


def cancel_selection(selection_id):
    """Soft-delete an active selection, releasing its capacity."""
    with transaction.atomic():
        selection = (
            UserSlotSelection.objects.select_for_update()
            .filter(pk=selection_id, is_delete=False)
            .first()
        )
        if selection is None:
            raise NotFound('Registration not found or already cancelled.')
        selection.is_delete = True
        selection.save(update_fields=['is_delete', 'updated_at'])

    invalidate_availability_cache()
    logger.info("Cancelled selection_id=%s userid=%s", selection.pk, selection.userid)
    return selection
