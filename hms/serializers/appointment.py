from rest_framework import serializers

from hms.models import Appointment
from hms.serializers.common import CleanCharField, PageQuerySerializer

TYPES = [c for c, _ in Appointment.TYPE_CHOICES]
STATUSES = [c for c, _ in Appointment.STATUS_CHOICES]


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    doctorId = serializers.IntegerField()
    appointmentDate = serializers.DateTimeField()
    duration = serializers.IntegerField(required=False, min_value=5, max_value=480)
    type = serializers.ChoiceField(choices=TYPES, required=False)
    reason = CleanCharField(required=False, allow_blank=True, max_length=1000)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class AppointmentUpdateSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(required=False)
    appointmentDate = serializers.DateTimeField(required=False)
    duration = serializers.IntegerField(required=False, min_value=5, max_value=480)
    type = serializers.ChoiceField(choices=TYPES, required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    reason = CleanCharField(required=False, allow_blank=True, max_length=1000)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class AppointmentListQuerySerializer(PageQuerySerializer):
    patientId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    date = serializers.DateField(required=False)


class DayQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
