from rest_framework import serializers

from .identity import OUTSOURCE, REGULAR, OutsourceIdentity, RegularIdentity
from .models import REGISTER_TYPE_CHOICES, UserSlotSelection


class UserLookupSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=255, trim_whitespace=True)


class SearchSerializer(serializers.Serializer):
    search = serializers.CharField(max_length=255, trim_whitespace=True)


class RegisterSlotSerializer(serializers.Serializer):
    # userid is derived server-side for outsource registrants
    userid = serializers.CharField(max_length=255, required=False, allow_blank=True)
    name = serializers.CharField(max_length=255)
    department = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    register_type = serializers.ChoiceField(choices=REGISTER_TYPE_CHOICES)
    time_id = serializers.IntegerField(min_value=1)

    def validate(self, attrs):
        department = (attrs.get('department') or '').strip()
        name = attrs['name'].strip()
        if attrs['register_type'] == REGULAR:
            userid = (attrs.get('userid') or '').strip()
            if not userid:
                raise serializers.ValidationError({'userid': 'This field is required.'})
            attrs['identity'] = RegularIdentity(userid=userid, name=name, department=department)
        elif attrs['register_type'] == OUTSOURCE:
            attrs['identity'] = OutsourceIdentity(name=name, department=department)
        return attrs


class SlotSelectionSerializer(serializers.ModelSerializer):
    slot_id = serializers.IntegerField(source='slot.id', read_only=True)
    slot_title = serializers.CharField(source='slot.title', read_only=True)
    time_id = serializers.IntegerField(source='slot.time.id', read_only=True)
    date_id = serializers.IntegerField(source='slot.time.date.id', read_only=True)
    time = serializers.CharField(source='slot.time.formatted_time', read_only=True)
    date = serializers.CharField(source='slot.time.date.formatted_date', read_only=True)

    class Meta:
        model = UserSlotSelection
        fields = [
            'id', 'userid', 'name', 'department', 'position', 'register_type',
            'slot_id', 'slot_title', 'time_id', 'date_id', 'time', 'date', 'created_at',
        ]
        read_only_fields = fields
