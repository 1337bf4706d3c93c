from rest_framework import serializers

from hms.models import BLOOD_TYPE_CHOICES, GENDER_CHOICES
from hms.serializers.common import CleanCharField, PageQuerySerializer

BLOOD_TYPES = [c for c, _ in BLOOD_TYPE_CHOICES]
GENDERS = [c for c, _ in GENDER_CHOICES]


class InsuranceInfoSerializer(serializers.Serializer):
    provider = CleanCharField(max_length=128)
    policyNumber = serializers.CharField(max_length=64)
    groupNumber = serializers.CharField(required=False, allow_blank=True, max_length=64)
    validUntil = serializers.DateField(required=False, allow_null=True)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if value.get('validUntil'):
            value['validUntil'] = value['validUntil'].isoformat()
        return value


class PatientRegisterSerializer(serializers.Serializer):
    email = serializers.EmailField()
    firstName = CleanCharField(max_length=64)
    lastName = CleanCharField(max_length=64)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    password = serializers.CharField(required=False, allow_blank=True, write_only=True)
    dateOfBirth = serializers.DateField()
    gender = serializers.ChoiceField(choices=GENDERS)
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES, required=False, allow_blank=True)
    emergencyContact = CleanCharField(required=False, allow_blank=True, max_length=128)
    emergencyPhone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    address = serializers.DictField(required=False)
    insuranceInfo = InsuranceInfoSerializer(required=False)
    medicalHistory = serializers.DictField(required=False)
    allergies = serializers.ListField(child=CleanCharField(max_length=128), required=False)
    currentMedications = serializers.ListField(child=CleanCharField(max_length=128), required=False)
    registrationType = serializers.ChoiceField(choices=['SELF', 'STAFF'], default='STAFF')

    def validate_firstName(self, v):
        if not v:
            raise serializers.ValidationError('First name is required')
        return v

    def validate_dateOfBirth(self, v):
        from datetime import date
        if v > date.today():
            raise serializers.ValidationError('Date of birth cannot be in the future')
        return v


class PatientUpdateSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    firstName = CleanCharField(required=False, max_length=64)
    lastName = CleanCharField(required=False, max_length=64)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    dateOfBirth = serializers.DateField(required=False)
    gender = serializers.ChoiceField(choices=GENDERS, required=False)
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES, required=False, allow_blank=True)
    emergencyContact = CleanCharField(required=False, allow_blank=True, max_length=128)
    emergencyPhone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    address = serializers.DictField(required=False)
    insuranceInfo = InsuranceInfoSerializer(required=False)
    medicalHistory = serializers.DictField(required=False)
    allergies = serializers.ListField(child=CleanCharField(max_length=128), required=False)
    currentMedications = serializers.ListField(child=CleanCharField(max_length=128), required=False)
    isActive = serializers.BooleanField(required=False)


class PatientListQuerySerializer(PageQuerySerializer):
    search = serializers.CharField(required=False, allow_blank=True)


class PatientSearchSerializer(serializers.Serializer):
    query = serializers.CharField(required=False, allow_blank=True)
    mrn = serializers.CharField(required=False)
    dateOfBirth = serializers.DateField(required=False)
    gender = serializers.ChoiceField(choices=GENDERS, required=False)
    bloodType = serializers.ChoiceField(choices=BLOOD_TYPES, required=False)
    insuranceProvider = serializers.CharField(required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)


class CheckInSerializer(serializers.Serializer):
    mrn = serializers.CharField(max_length=20)
