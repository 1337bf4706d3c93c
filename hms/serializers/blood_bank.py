from datetime import date

from rest_framework import serializers

from hms.models import BLOOD_TYPE_CHOICES, COMPONENT_CHOICES, GENDER_CHOICES
from hms.serializers.common import CleanCharField, DateRangeQuerySerializer, PageQuerySerializer

BLOOD_TYPES = [c for c, _ in BLOOD_TYPE_CHOICES]
COMPONENTS = [c for c, _ in COMPONENT_CHOICES]


class DonorSerializer(serializers.Serializer):
    firstName = CleanCharField(max_length=64)
    lastName = CleanCharField(max_length=64)
    dateOfBirth = serializers.DateField()
    gender = serializers.ChoiceField(choices=[c for c, _ in GENDER_CHOICES])
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES)
    phone = serializers.CharField(max_length=32)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    address = serializers.DictField(required=False)
    weightKg = serializers.DecimalField(max_digits=5, decimal_places=1, min_value=0, required=False, allow_null=True)

    def validate_dateOfBirth(self, v):
        if v > date.today():
            raise serializers.ValidationError('Date of birth cannot be in the future')
        return v


class DonorQuerySerializer(PageQuerySerializer):
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES, required=False)
    eligible = serializers.BooleanField(required=False, allow_null=True)


class DonationSerializer(serializers.Serializer):
    donorId = serializers.IntegerField()
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES, required=False)
    component = serializers.ChoiceField(choices=COMPONENTS, required=False)
    # range checked by the service so the message matches other business rules
    quantityMl = serializers.IntegerField()
    hemoglobin = serializers.DecimalField(max_digits=4, decimal_places=1, required=False, allow_null=True)
    screeningResults = serializers.DictField(required=False)
    storageLocation = CleanCharField(required=False, allow_blank=True, max_length=64)
    notes = CleanCharField(required=False, allow_blank=True, max_length=1000)


class DonationQuerySerializer(DateRangeQuerySerializer):
    donorId = serializers.IntegerField(required=False)
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES, required=False)


class CrossmatchRequestSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    bloodUnitId = serializers.IntegerField()
    notes = CleanCharField(required=False, allow_blank=True, max_length=1000)


class CrossmatchResultSerializer(serializers.Serializer):
    result = serializers.ChoiceField(choices=['COMPATIBLE', 'INCOMPATIBLE'])
    notes = CleanCharField(required=False, allow_blank=True, max_length=1000)


class IssueUnitSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()


class ExpiringQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=0, max_value=365)
