from rest_framework import serializers

from hms.models import StaffMember
from hms.serializers.common import CleanCharField, PageQuerySerializer

SHIFTS = [c for c, _ in StaffMember.SHIFT_CHOICES]


class StaffSerializer(serializers.Serializer):
    userId = serializers.IntegerField()
    licenseNumber = CleanCharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    specialization = CleanCharField(required=False, allow_blank=True, max_length=128)
    department = CleanCharField(required=False, allow_blank=True, max_length=128)
    experienceYears = serializers.IntegerField(required=False, min_value=0, max_value=70)
    qualifications = serializers.ListField(child=CleanCharField(max_length=128), required=False)
    schedule = serializers.DictField(required=False)
    shift = serializers.ChoiceField(choices=SHIFTS, required=False, allow_blank=True)
    consultationFee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0,
                                               required=False, allow_null=True)
    isAvailable = serializers.BooleanField(required=False)


class StaffUpdateSerializer(StaffSerializer):
    userId = None


class StaffQuerySerializer(PageQuerySerializer):
    specialization = serializers.CharField(required=False)
    department = serializers.CharField(required=False)
    shift = serializers.CharField(required=False)
    isAvailable = serializers.BooleanField(required=False, allow_null=True)
