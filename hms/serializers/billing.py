from rest_framework import serializers

from hms.models import Bill, InsuranceClaim, Payment
from hms.serializers.common import CleanCharField, DateRangeQuerySerializer

MONEY = dict(max_digits=12, decimal_places=2)
PERCENT = dict(max_digits=5, decimal_places=2, min_value=0, max_value=100)


class BillItemSerializer(serializers.Serializer):
    description = CleanCharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1)
    unitPrice = serializers.DecimalField(min_value=0, **MONEY)
    discountAmount = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    discountPercent = serializers.DecimalField(required=False, allow_null=True, **PERCENT)
    taxPercent = serializers.DecimalField(required=False, allow_null=True, **PERCENT)


class BillCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    billType = serializers.ChoiceField(choices=[c for c, _ in Bill.TYPE_CHOICES], required=False)
    items = BillItemSerializer(many=True, allow_empty=False)
    dueDate = serializers.DateField(required=False, allow_null=True)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class PackageBillSerializer(BillCreateSerializer):
    billType = None
    packageName = CleanCharField(max_length=128)
    validityDays = serializers.IntegerField(required=False, min_value=1)


class BillQuerySerializer(DateRangeQuerySerializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Bill.STATUS_CHOICES], required=False)
    patientId = serializers.IntegerField(required=False)
    billType = serializers.ChoiceField(choices=[c for c, _ in Bill.TYPE_CHOICES], required=False)


class DiscountSerializer(serializers.Serializer):
    discountAmount = serializers.DecimalField(required=False, min_value=0, **MONEY)
    discountPercent = serializers.DecimalField(required=False, **PERCENT)
    reason = CleanCharField(max_length=500)

    def validate(self, attrs):
        if attrs.get('discountAmount') is None and attrs.get('discountPercent') is None:
            raise serializers.ValidationError('discountAmount or discountPercent is required')
        return attrs


class PaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(**MONEY)
    method = serializers.ChoiceField(choices=[c for c, _ in Payment.METHOD_CHOICES])
    reference = CleanCharField(required=False, allow_blank=True, max_length=128)
    paidAt = serializers.DateTimeField(required=False)


class ClaimSubmitSerializer(serializers.Serializer):
    claimNumber = CleanCharField(max_length=32)
    provider = CleanCharField(max_length=128)
    policyNumber = CleanCharField(max_length=64)
    claimAmount = serializers.DecimalField(min_value=0, **MONEY)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class ClaimProcessSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in InsuranceClaim.STATUS_CHOICES if c != 'SUBMITTED'])
    approvedAmount = serializers.DecimalField(required=False, allow_null=True, min_value=0, **MONEY)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)

    def validate(self, attrs):
        if attrs['status'] == 'PARTIALLY_APPROVED' and not attrs.get('approvedAmount'):
            raise serializers.ValidationError({'approvedAmount': 'required for a partial approval'})
        return attrs


class ReportQuerySerializer(serializers.Serializer):
    department = serializers.CharField(required=False, allow_blank=True)
    dateFrom = serializers.DateField()
    dateTo = serializers.DateField()

    def validate(self, attrs):
        if attrs['dateFrom'] > attrs['dateTo']:
            raise serializers.ValidationError('dateFrom must be before dateTo')
        return attrs
