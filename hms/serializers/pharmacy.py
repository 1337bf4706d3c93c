from rest_framework import serializers

from hms.models import Prescription
from hms.serializers.common import CleanCharField, PageQuerySerializer


class MedicationSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    genericName = CleanCharField(required=False, allow_blank=True, max_length=255)
    brandName = CleanCharField(required=False, allow_blank=True, max_length=255)
    category = CleanCharField(required=False, allow_blank=True, max_length=64)
    dosageForm = CleanCharField(required=False, allow_blank=True, max_length=64)
    strength = CleanCharField(required=False, allow_blank=True, max_length=64)
    manufacturer = CleanCharField(required=False, allow_blank=True, max_length=128)
    unitPrice = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    stockQuantity = serializers.IntegerField(min_value=0, required=False)
    reorderLevel = serializers.IntegerField(min_value=0, required=False)
    batchNumber = CleanCharField(required=False, allow_blank=True, max_length=64)
    expiryDate = serializers.DateField(required=False, allow_null=True)
    requiresPrescription = serializers.BooleanField(required=False)
    isActive = serializers.BooleanField(required=False)
    description = CleanCharField(required=False, allow_blank=True)


class MedicationQuerySerializer(PageQuerySerializer):
    search = serializers.CharField(required=False, allow_blank=True)
    category = serializers.CharField(required=False)
    lowStock = serializers.BooleanField(required=False, allow_null=True)
    expiringSoon = serializers.BooleanField(required=False, allow_null=True)


class StockUpdateSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1)
    operation = serializers.ChoiceField(choices=['add', 'subtract'])
    reason = CleanCharField(required=False, allow_blank=True, max_length=255)


class DaysQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=0, max_value=365)


class PrescriptionSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    doctorId = serializers.IntegerField(required=False)
    medicationId = serializers.IntegerField()
    dosage = CleanCharField(max_length=64)
    frequency = CleanCharField(max_length=64)
    duration = CleanCharField(required=False, allow_blank=True, max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    instructions = CleanCharField(required=False, allow_blank=True, max_length=1000)
    refills = serializers.IntegerField(required=False, min_value=0, max_value=12)


class PrescriptionQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Prescription.STATUS_CHOICES], required=False)
