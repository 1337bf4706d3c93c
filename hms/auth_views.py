"""
Authentication endpoints: login, JWT refresh, logout and profile.

Login returns both the DRF token (``Authorization: Token <key>``) and a
simplejwt pair (``Authorization: Bearer <access>``).
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate, get_user_model
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.serializers import TokenRefreshSerializer

from hms.models import Patient, StaffMember
from hms.serializers.auth import LoginSerializer, LogoutSerializer
from hms.services.audit import log_action

User = get_user_model()
logger = logging.getLogger(__name__)


def format_user(user) -> dict:
    data = {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'name': user.get_full_name() or user.username,
        'role': user.role,
    }
    patient = Patient.objects.filter(user=user).only('id', 'mrn').first()
    if patient:
        data['patientId'] = patient.id
        data['mrn'] = patient.mrn
    data['staff'] = [{'id': s.id, 'staffType': s.staff_type}
                     for s in StaffMember.objects.filter(user=user).order_by('id')]
    return data


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    username = vd.get('username')
    if not username:
        match = User.objects.filter(email__iexact=vd['email'].strip()).first()
        username = match.username if match else vd['email']

    user = authenticate(request, username=username, password=vd['password'])
    if not user:
        log_action(user=None, action='LOGIN_FAILED', resource='user',
                   details={'username': username}, flags=['SECURITY'], request=request, success=False)
        logger.warning('Failed login for %s', username)
        raise AuthenticationFailed('Invalid credentials')

    log_action(user=user, action='LOGIN', resource='user', resource_id=user.id,
               flags=['SECURITY'], request=request)

    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return Response({
        'ok': True,
        'data': {
            'token': token_obj.key,
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': format_user(user),
        },
    })


login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_view(request):
    """Exchange a refresh token for a new access token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    return Response({'ok': True, 'data': s.validated_data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Blacklist the given refresh token, or every outstanding one for the user."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            raise ValidationError(str(e))
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    Token.objects.filter(user=request.user).delete()
    log_action(user=request.user, action='LOGOUT', resource='user', resource_id=request.user.id,
               details={'blacklisted': count}, flags=['SECURITY'], request=request)
    return Response({'ok': True, 'data': {'blacklisted': count}})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_view(request):
    return Response({'ok': True, 'data': format_user(request.user)})
