from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    """Accepts ``username`` or ``email`` plus ``password``."""
    username = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(trim_whitespace=False)

    def validate(self, attrs):
        if not (attrs.get('username') or attrs.get('email')):
            raise serializers.ValidationError('username or email is required')
        return attrs


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=False, allow_blank=True)
