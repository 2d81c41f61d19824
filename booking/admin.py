from django.contrib import admin, messages

from .allocator import cancel_selection
from .exceptions import NotFound
from .models import RegisterDate, RegisterTime, RegisterSlot, UserSlotSelection, Setting
from .utils import invalidate_availability_cache


class InvalidatesAvailabilityAdmin(admin.ModelAdmin):
    """Drop the availability snapshot after every admin-site write."""

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        invalidate_availability_cache()

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        invalidate_availability_cache()

    def delete_model(self, request, obj):
        super().delete_model(request, obj)
        invalidate_availability_cache()

    def delete_queryset(self, request, queryset):
        super().delete_queryset(request, queryset)
        invalidate_availability_cache()


class RegisterTimeInline(admin.TabularInline):
    model = RegisterTime
    extra = 0
    fields = ('start_time', 'end_time', 'time', 'is_active')


class RegisterSlotInline(admin.TabularInline):
    # capacity changes go through the slot API, which checks them under the allocation lock
    model = RegisterSlot
    extra = 0
    fields = ('title', 'available_slots', 'is_active')
    readonly_fields = fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(RegisterDate)
class RegisterDateAdmin(InvalidatesAvailabilityAdmin):
    list_display = ('date', 'is_active', 'get_times_count')
    list_filter = ('is_active',)
    inlines = [RegisterTimeInline]

    def get_times_count(self, obj):
        return obj.times.count()
    get_times_count.short_description = 'Times'


@admin.register(RegisterTime)
class RegisterTimeAdmin(InvalidatesAvailabilityAdmin):
    list_display = ('date', 'start_time', 'end_time', 'is_active')
    list_filter = ('is_active', 'date')
    inlines = [RegisterSlotInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ('date',)
        return ()


@admin.register(RegisterSlot)
class RegisterSlotAdmin(InvalidatesAvailabilityAdmin):
    list_display = ('title', 'time', 'available_slots', 'get_active_count', 'is_active')
    list_filter = ('is_active', 'time__date')
    search_fields = ('title',)

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ('time', 'available_slots')
        return ()

    def get_active_count(self, obj):
        return obj.active_selection_count()
    get_active_count.short_description = 'Registered'


@admin.register(UserSlotSelection)
class UserSlotSelectionAdmin(admin.ModelAdmin):
    list_display = ('userid', 'name', 'department', 'register_type', 'slot', 'is_delete', 'created_at')
    list_filter = ('register_type', 'is_delete', 'slot__time__date')
    search_fields = ('userid', 'name', 'department')
    readonly_fields = (
        'slot', 'userid', 'name', 'position', 'department', 'register_type', 'is_delete', 'created_at', 'updated_at',
    )
    actions = ['cancel_selected']

    # selections are created by the allocator and only ever soft-cancelled
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def cancel_selected(self, request, queryset):
        cancelled = 0
        for selection_id in queryset.filter(is_delete=False).values_list('pk', flat=True):
            try:
                cancel_selection(selection_id)
            except NotFound:
                continue
            cancelled += 1
        self.message_user(request, f'Cancelled {cancelled} registrations.', messages.SUCCESS)
    cancel_selected.short_description = 'Cancel selected registrations'


admin.site.register(Setting, InvalidatesAvailabilityAdmin)
