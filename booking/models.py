from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Count, F, IntegerField, OuterRef, Q, Subquery, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from .utils import format_long_date, format_time_range


REGISTER_TYPE_CHOICES = [
    ('regular', 'Regular employee'),
    ('outsource', 'Outsource'),
]

def time_ordering(prefix=''):
    """Order RegisterTime rows, reached through ``prefix`` (e.g. ``'slot__time__'``), by start time.

    Legacy rows without a start_time sort after timed ones on every backend.
    """
    return [F(f'{prefix}start_time').asc(nulls_last=True), f'{prefix}time', f'{prefix}id']


TIME_ORDERING = time_ordering()


class RegisterDate(models.Model):
    date = models.DateField(unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'register_dates'
        ordering = ['date']

    @property
    def formatted_date(self):
        return format_long_date(self.date)

    def __str__(self):
        return self.date.isoformat()


class RegisterTimeQuerySet(models.QuerySet):
    def with_capacity(self):
        """Annotate ``total_capacity`` (active slots) and ``registered_count`` (active selections).

        Registered selections are counted across every slot of the time, including
        deactivated ones, so a deactivated slot keeps holding its registrants.
        """
        capacity = (
            RegisterSlot.objects.filter(time=OuterRef('pk'), is_active=True)
            .order_by()
            .values('time')
            .annotate(total=Sum('available_slots'))
            .values('total')
        )
        registered = (
            UserSlotSelection.objects.filter(slot__time=OuterRef('pk'), is_delete=False)
            .order_by()
            .values('slot__time')
            .annotate(total=Count('pk'))
            .values('total')
        )
        return self.annotate(
            total_capacity=Coalesce(Subquery(capacity, output_field=IntegerField()), 0),
            registered_count=Coalesce(Subquery(registered, output_field=IntegerField()), 0),
        )


class RegisterTime(models.Model):
    date = models.ForeignKey(RegisterDate, on_delete=models.CASCADE, related_name='times')
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)
    # Single start time kept for rows created before time ranges existed
    time = models.CharField(max_length=20, blank=True, default='')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = RegisterTimeQuerySet.as_manager()

    class Meta:
        db_table = 'register_times'
        ordering = TIME_ORDERING
        indexes = [
            models.Index(fields=['date', 'is_active'], name='reg_time_date_active_idx'),
        ]

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({'end_time': 'End time must be after start time.'})

    @property
    def time_display(self):
        return format_time_range(self.start_time, self.end_time, self.time)

    @property
    def formatted_time(self):
        return format_time_range(self.start_time, self.end_time, self.time, twelve_hour=True)

    def __str__(self):
        return f"{self.date} {self.time_display}"


class RegisterSlotQuerySet(models.QuerySet):
    def with_active_count(self):
        return self.annotate(active_count=Count('selections', filter=Q(selections__is_delete=False)))


class RegisterSlot(models.Model):
    time = models.ForeignKey(RegisterTime, on_delete=models.CASCADE, related_name='slots')
    title = models.CharField(max_length=255)
    available_slots = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = RegisterSlotQuerySet.as_manager()

    class Meta:
        db_table = 'register_slots'
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_slots__gte=1),
                name='slot_capacity_positive',
            ),
        ]

    def active_selection_count(self):
        return self.selections.filter(is_delete=False).count()

    def __str__(self):
        return f"{self.title} ({self.available_slots})"


class UserSlotSelectionQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_delete=False)

    def with_schedule(self):
        return self.select_related('slot__time__date')


class UserSlotSelection(models.Model):
    slot = models.ForeignKey(RegisterSlot, on_delete=models.CASCADE, related_name='selections')
    userid = models.CharField(max_length=255)
    name = models.CharField(max_length=255)
    position = models.CharField(max_length=255, blank=True, default='')
    department = models.CharField(max_length=255, blank=True, default='')
    register_type = models.CharField(max_length=10, choices=REGISTER_TYPE_CHOICES, default='regular')
    is_delete = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserSlotSelectionQuerySet.as_manager()

    class Meta:
        db_table = 'user_slot_selections'
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['userid'],
                condition=models.Q(is_delete=False),
                name='unique_active_selection_per_user',
            ),
        ]
        indexes = [
            models.Index(fields=['slot', 'is_delete'], name='selection_slot_active_idx'),
            models.Index(fields=['userid', 'is_delete'], name='selection_user_active_idx'),
        ]

    def __str__(self):
        return f"UserSlotSelection(userid={self.userid}, slot={self.slot_id})"


class Setting(models.Model):
    SINGLETON_ID = 1

    title = models.CharField(max_length=255)
    register_start_date = models.DateField(null=True, blank=True)
    register_end_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'settings'

    @classmethod
    def load(cls):
        """Return the stored settings row, or an unsaved default one."""
        setting = cls.objects.filter(pk=cls.SINGLETON_ID).first()
        if setting is None:
            setting = cls(pk=cls.SINGLETON_ID, title=settings.DEFAULT_EVENT_TITLE)
        return setting

    @classmethod
    def upsert(cls, **fields):
        setting, _ = cls.objects.update_or_create(pk=cls.SINGLETON_ID, defaults=fields)
        return setting

    def is_registration_open(self, today=None):
        if not self.register_start_date or not self.register_end_date:
            return False
        today = today or timezone.localdate()
        return self.register_start_date <= today <= self.register_end_date

    def __str__(self):
        return self.title
