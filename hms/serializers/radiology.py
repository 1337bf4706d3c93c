from django.conf import settings
from rest_framework import serializers

from hms.models import RadiologyTest
from hms.serializers.common import CleanCharField, DateRangeQuerySerializer

MODALITIES = [c for c, _ in RadiologyTest.MODALITY_CHOICES]
STATUSES = [c for c, _ in RadiologyTest.STATUS_CHOICES]


class RadiologyCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    testName = CleanCharField(max_length=255)
    modality = serializers.ChoiceField(choices=MODALITIES)
    bodyPart = CleanCharField(required=False, allow_blank=True, max_length=64)
    urgent = serializers.BooleanField(required=False, default=False)
    clinicalHistory = CleanCharField(required=False, allow_blank=True, max_length=2000)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class RadiologyUpdateSerializer(serializers.Serializer):
    testName = CleanCharField(required=False, max_length=255)
    bodyPart = CleanCharField(required=False, allow_blank=True, max_length=64)
    urgent = serializers.BooleanField(required=False)
    clinicalHistory = CleanCharField(required=False, allow_blank=True, max_length=2000)
    scheduledDate = serializers.DateTimeField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    findings = CleanCharField(required=False, allow_blank=True)
    impression = CleanCharField(required=False, allow_blank=True)
    recommendations = CleanCharField(required=False, allow_blank=True)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class RadiologyQuerySerializer(DateRangeQuerySerializer):
    status = serializers.CharField(required=False)
    patientId = serializers.IntegerField(required=False)
    modality = serializers.ChoiceField(choices=MODALITIES, required=False)
    urgent = serializers.BooleanField(required=False, allow_null=True)


class ScheduleSerializer(serializers.Serializer):
    scheduledDate = serializers.DateTimeField()


class ReportSerializer(serializers.Serializer):
    findings = CleanCharField()
    impression = CleanCharField()
    recommendations = CleanCharField(required=False, allow_blank=True)
    images = serializers.ListField(child=serializers.CharField(max_length=500), required=False)


class DicomUploadSerializer(serializers.Serializer):
    file = serializers.FileField()

    def validate_file(self, f):
        if f.size > settings.UPLOAD_MAX_MB * 1024 * 1024:
            raise serializers.ValidationError(f'File exceeds {settings.UPLOAD_MAX_MB} MB')
        return f


class StatsQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
