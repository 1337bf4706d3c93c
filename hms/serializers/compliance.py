from rest_framework import serializers

from hms.serializers.common import CleanCharField


class AuditQuerySerializer(serializers.Serializer):
    userId = serializers.IntegerField(required=False)
    action = serializers.CharField(required=False)
    resource = serializers.CharField(required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    flags = serializers.CharField(required=False, allow_blank=True)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=1000, default=100)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)


class AuditEventSerializer(serializers.Serializer):
    action = CleanCharField(max_length=64)
    resource = CleanCharField(max_length=64)
    resourceId = CleanCharField(required=False, allow_blank=True, max_length=64)
    details = serializers.DictField(required=False)
    complianceFlags = serializers.ListField(child=serializers.CharField(max_length=32), required=False)
    success = serializers.BooleanField(required=False, default=True)
