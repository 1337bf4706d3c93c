from rest_framework import serializers

from hms.models import LabQualityControl, LabResult, LabSample, LabTest
from hms.serializers.common import CleanCharField, DateRangeQuerySerializer, PageQuerySerializer

PRIORITIES = [c for c, _ in LabTest.PRIORITY_CHOICES]
STATUSES = [c for c, _ in LabTest.STATUS_CHOICES]


def _optional_bool():
    # query strings: a missing flag means "no filter", not False
    return serializers.BooleanField(required=False, allow_null=True)


class CatalogCreateSerializer(serializers.Serializer):
    code = serializers.RegexField(r'^[A-Za-z0-9_-]{2,32}$')
    name = CleanCharField(max_length=255)
    category = CleanCharField(required=False, allow_blank=True, max_length=64)
    department = CleanCharField(required=False, allow_blank=True, max_length=64)
    specimenType = CleanCharField(required=False, allow_blank=True, max_length=64)
    description = CleanCharField(required=False, allow_blank=True)
    normalRange = CleanCharField(required=False, allow_blank=True, max_length=128)
    units = CleanCharField(required=False, allow_blank=True, max_length=32)
    turnaroundHours = serializers.IntegerField(required=False, min_value=1)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)


class CatalogQuerySerializer(PageQuerySerializer):
    category = serializers.CharField(required=False)
    department = serializers.CharField(required=False)
    isActive = _optional_bool()


class LabOrderSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    catalogId = serializers.IntegerField()
    priority = serializers.ChoiceField(choices=PRIORITIES, required=False)
    urgent = serializers.BooleanField(required=False, default=False)
    clinicalNotes = CleanCharField(required=False, allow_blank=True, max_length=2000)
    diagnosis = CleanCharField(required=False, allow_blank=True, max_length=255)


class LabBatchOrderSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    catalogIds = serializers.ListField(child=serializers.IntegerField(), min_length=1, max_length=50)
    priority = serializers.ChoiceField(choices=PRIORITIES, required=False)
    urgent = serializers.BooleanField(required=False, default=False)
    clinicalNotes = CleanCharField(required=False, allow_blank=True, max_length=2000)
    diagnosis = CleanCharField(required=False, allow_blank=True, max_length=255)


class LabTestQuerySerializer(DateRangeQuerySerializer):
    status = serializers.CharField(required=False)
    priority = serializers.CharField(required=False)
    patientId = serializers.IntegerField(required=False)
    catalogId = serializers.IntegerField(required=False)
    department = serializers.CharField(required=False)
    specimenType = serializers.CharField(required=False)
    urgent = _optional_bool()
    orderedBy = serializers.IntegerField(required=False)


class ProcessOrderSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['ACCEPT', 'REJECT'])
    reason = CleanCharField(required=False, allow_blank=True, max_length=500)
    sampleType = CleanCharField(required=False, allow_blank=True, max_length=64)
    volume = serializers.CharField(required=False, allow_blank=True, max_length=32)
    notes = CleanCharField(required=False, allow_blank=True, max_length=1000)

    def validate(self, attrs):
        if attrs['action'] == 'REJECT' and not attrs.get('reason'):
            raise serializers.ValidationError({'reason': 'A reason is required to reject an order'})
        return attrs


class CollectSampleSerializer(serializers.Serializer):
    sampleType = CleanCharField(required=False, allow_blank=True, max_length=64)
    volume = serializers.CharField(required=False, allow_blank=True, max_length=32)
    condition = serializers.ChoiceField(choices=[c for c, _ in LabSample.CONDITION_CHOICES], required=False)
    storageLocation = CleanCharField(required=False, allow_blank=True, max_length=128)
    notes = CleanCharField(required=False, allow_blank=True, max_length=1000)


class ResultItemSerializer(serializers.Serializer):
    parameter = CleanCharField(max_length=128)
    value = CleanCharField(max_length=128)
    unit = CleanCharField(required=False, allow_blank=True, max_length=32)
    referenceRange = CleanCharField(required=False, allow_blank=True, max_length=128)
    flag = serializers.ChoiceField(choices=[c for c, _ in LabResult.FLAG_CHOICES], required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in LabResult.STATUS_CHOICES], required=False)
    comments = CleanCharField(required=False, allow_blank=True, max_length=1000)


class EnterResultsSerializer(serializers.Serializer):
    results = ResultItemSerializer(many=True, allow_empty=False)


class LabStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES)
    reason = CleanCharField(required=False, allow_blank=True, max_length=500)


class ReagentSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    lotNumber = CleanCharField(max_length=64)
    manufacturer = CleanCharField(required=False, allow_blank=True, max_length=128)
    expiryDate = serializers.DateField()
    quantity = serializers.IntegerField(required=False, min_value=0)
    unit = CleanCharField(required=False, allow_blank=True, max_length=32)
    storageConditions = CleanCharField(required=False, allow_blank=True, max_length=128)


class ReagentQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=['ACTIVE', 'EXPIRED', 'DEPLETED'], required=False)
    expiringDays = serializers.IntegerField(required=False, min_value=0)


class EquipmentSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    serialNumber = CleanCharField(max_length=64)
    model = CleanCharField(required=False, allow_blank=True, max_length=128)
    manufacturer = CleanCharField(required=False, allow_blank=True, max_length=128)
    lastCalibration = serializers.DateField(required=False, allow_null=True)
    nextCalibration = serializers.DateField(required=False, allow_null=True)


class EquipmentQuerySerializer(PageQuerySerializer):
    status = serializers.ChoiceField(choices=['OPERATIONAL', 'MAINTENANCE', 'OUT_OF_SERVICE'], required=False)


class BarcodeLabelsSerializer(serializers.Serializer):
    barcodes = serializers.ListField(child=serializers.CharField(max_length=32), min_length=1, max_length=100)


class QCRecordSerializer(serializers.Serializer):
    parameter = CleanCharField(max_length=128)
    controlLot = CleanCharField(max_length=64)
    reagentId = serializers.IntegerField(required=False)
    controlLevel = serializers.ChoiceField(choices=[c for c, _ in LabQualityControl.LEVEL_CHOICES], required=False)
    expectedRange = serializers.CharField(max_length=64)
    actualValue = serializers.CharField(max_length=64)
    notes = CleanCharField(required=False, allow_blank=True, max_length=1000)


class QCQuerySerializer(serializers.Serializer):
    parameter = serializers.CharField(required=False)
    days = serializers.IntegerField(required=False, min_value=1, max_value=365, default=30)


class LISConfigSerializer(serializers.Serializer):
    name = CleanCharField(max_length=128)
    endpoint = serializers.URLField()
    apiKey = serializers.CharField(max_length=255, write_only=True)
    timeout = serializers.IntegerField(required=False, min_value=1, max_value=300)
    isActive = serializers.BooleanField(required=False, default=True)


class LISResultItemSerializer(serializers.Serializer):
    parameter = serializers.CharField(max_length=128)
    value = serializers.CharField(max_length=128)
    units = serializers.CharField(required=False, allow_blank=True, max_length=32)
    referenceRange = serializers.CharField(required=False, allow_blank=True, max_length=128)
    flag = serializers.ChoiceField(choices=[c for c, _ in LabResult.FLAG_CHOICES], required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in LabResult.STATUS_CHOICES], required=False)
    performedDate = serializers.CharField(required=False)


class LISResultsSerializer(serializers.Serializer):
    orderNumber = serializers.CharField(max_length=32)
    status = serializers.CharField(max_length=20)
    results = LISResultItemSerializer(many=True, required=False)
