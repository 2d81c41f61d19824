from django.db import transaction
from rest_framework import serializers

from booking.models import REGISTER_TYPE_CHOICES, RegisterDate, RegisterSlot, RegisterTime, Setting


class SettingSerializer(serializers.ModelSerializer):
    register_start_date = serializers.DateField(format='%Y-%m-%d', input_formats=['%Y-%m-%d'])
    register_end_date = serializers.DateField(format='%Y-%m-%d', input_formats=['%Y-%m-%d'])
    is_registration_open = serializers.SerializerMethodField()

    class Meta:
        model = Setting
        fields = ['title', 'register_start_date', 'register_end_date', 'is_registration_open']

    def get_is_registration_open(self, obj):
        return obj.is_registration_open()

    def validate(self, attrs):
        if attrs['register_end_date'] <= attrs['register_start_date']:
            raise serializers.ValidationError({'register_end_date': 'End date must be after start date.'})
        return attrs

    def save(self, **kwargs):
        self.instance = Setting.upsert(**self.validated_data, **kwargs)
        return self.instance


class RegisterDateSerializer(serializers.ModelSerializer):
    formatted_date = serializers.CharField(read_only=True)

    class Meta:
        model = RegisterDate
        fields = ['id', 'date', 'formatted_date', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']


class RegisterTimeSerializer(serializers.ModelSerializer):
    register_date_id = serializers.PrimaryKeyRelatedField(source='date', queryset=RegisterDate.objects.all())
    start_time = serializers.TimeField(format='%H:%M', input_formats=['%H:%M', '%H:%M:%S'])
    end_time = serializers.TimeField(format='%H:%M', input_formats=['%H:%M', '%H:%M:%S'])
    time = serializers.CharField(source='time_display', read_only=True)
    formatted_time = serializers.CharField(read_only=True)

    class Meta:
        model = RegisterTime
        fields = ['id', 'register_date_id', 'start_time', 'end_time', 'time', 'formatted_time', 'is_active']

    def validate_register_date_id(self, value):
        if self.instance is not None and value != self.instance.date:
            raise serializers.ValidationError('A time cannot be moved to another date.')
        return value

    def validate(self, attrs):
        start = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end = attrs.get('end_time', getattr(self.instance, 'end_time', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_time': 'End time must be after start time.'})
        return attrs


class RegisterSlotSerializer(serializers.ModelSerializer):
    register_time_id = serializers.PrimaryKeyRelatedField(source='time', queryset=RegisterTime.objects.all())
    available_slots = serializers.IntegerField(min_value=1)
    active_count = serializers.SerializerMethodField()

    class Meta:
        model = RegisterSlot
        fields = ['id', 'register_time_id', 'title', 'available_slots', 'is_active', 'active_count']

    def get_active_count(self, obj):
        count = getattr(obj, 'active_count', None)
        if count is None:
            count = obj.active_selection_count()
        return count

    def validate_register_time_id(self, value):
        if self.instance is not None and value != self.instance.time:
            raise serializers.ValidationError('A slot cannot be moved to another time.')
        return value

    def validate_available_slots(self, value):
        # capacity may not drop below the registrations the slot already holds
        if self.instance is not None:
            registered = self.instance.active_selection_count()
            if value < registered:
                raise serializers.ValidationError(
                    f"Capacity cannot be lower than the {registered} active registrations in this slot."
                )
        return value


class MassAddSlotSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    available_slots = serializers.IntegerField(min_value=1, max_value=1000)
    time_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), min_length=1, max_length=100)

    def validate_time_ids(self, value):
        # remove duplicates while preserving order
        seen = set()
        ids = []
        for v in value:
            if v in seen:
                continue
            seen.add(v)
            ids.append(v)

        existing = set(RegisterTime.objects.filter(pk__in=ids).values_list('pk', flat=True))
        missing = [v for v in ids if v not in existing]
        if missing:
            raise serializers.ValidationError(f"Unknown time ids: {', '.join(str(v) for v in missing)}")
        return ids

    @staticmethod
    def _check_title_free(title, time_ids):
        if RegisterSlot.objects.filter(time_id__in=time_ids, title=title).exists():
            raise serializers.ValidationError(
                {'title': f"Slots with title '{title}' already exist in some of the selected time slots"}
            )

    def validate(self, attrs):
        self._check_title_free(attrs['title'], attrs['time_ids'])
        return attrs

    def create(self, validated_data):
        title = validated_data['title']
        time_ids = validated_data['time_ids']
        with transaction.atomic():
            # row locks on the target times serialize overlapping mass-adds
            list(RegisterTime.objects.select_for_update().filter(pk__in=time_ids).order_by('pk'))
            self._check_title_free(title, time_ids)
            return [
                RegisterSlot.objects.create(
                    time_id=time_id,
                    title=title,
                    available_slots=validated_data['available_slots'],
                    is_active=True,
                )
                for time_id in time_ids
            ]


class TimeInputSerializer(serializers.Serializer):
    start_time = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'])
    end_time = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'])
    is_active = serializers.BooleanField(default=True)

    def validate(self, attrs):
        if attrs['end_time'] <= attrs['start_time']:
            raise serializers.ValidationError({'end_time': 'End time must be after start time.'})
        return attrs


class DateInputSerializer(serializers.Serializer):
    date = serializers.DateField()
    is_active = serializers.BooleanField(default=True)
    times = TimeInputSerializer(many=True, required=False)


class SaveAllSerializer(serializers.Serializer):
    settings = SettingSerializer()
    dates = DateInputSerializer(many=True, required=False)

    def validate_dates(self, value):
        seen = set()
        for item in value:
            if item['date'] in seen:
                raise serializers.ValidationError(f"Date {item['date']} is listed more than once.")
            seen.add(item['date'])
        return value


class LedgerTimeSerializer(RegisterTimeSerializer):
    slots = RegisterSlotSerializer(many=True, read_only=True)

    class Meta(RegisterTimeSerializer.Meta):
        fields = RegisterTimeSerializer.Meta.fields + ['slots']


class LedgerDateSerializer(RegisterDateSerializer):
    times = LedgerTimeSerializer(many=True, read_only=True)

    class Meta(RegisterDateSerializer.Meta):
        fields = RegisterDateSerializer.Meta.fields + ['times']


class ExportFilterSerializer(serializers.Serializer):
    search = serializers.CharField(max_length=255, required=False, allow_blank=True)
    department = serializers.CharField(max_length=255, required=False, allow_blank=True)
    register_type = serializers.ChoiceField(choices=REGISTER_TYPE_CHOICES, required=False, allow_blank=True)
