import bleach
from rest_framework import serializers


def clean_text(v):
    return bleach.clean((v or '').strip(), strip=True)


class CleanCharField(serializers.CharField):
    """CharField that strips HTML from the submitted text."""

    def to_internal_value(self, data):
        return clean_text(super().to_internal_value(data))


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=100, default=10)


class DateRangeQuerySerializer(PageQuerySerializer):
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('dateFrom'), attrs.get('dateTo')
        if start and end and start > end:
            raise serializers.ValidationError('dateFrom must be before dateTo')
        return attrs


class ReasonSerializer(serializers.Serializer):
    reason = CleanCharField(required=False, allow_blank=True, max_length=500)
