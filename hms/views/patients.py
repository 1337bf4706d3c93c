"""
Patient endpoints.

Registration is open so that patients can self-register (adults only);
staff register on behalf of patients and manage records.  Patients may
read their own record and medical summary but nobody else's.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from hms.permissions import IsStaff, IsFrontDesk, STAFF_ROLES, require_role
from hms.serializers.patient import (
    CheckInSerializer,
    PatientListQuerySerializer,
    PatientRegisterSerializer,
    PatientSearchSerializer,
    PatientUpdateSerializer,
)
from hms.services import patients as svc
from hms.services.common import paginate


def _ensure_can_view(user, patient) -> None:
    if getattr(user, 'role', '') == 'patient' and patient.user_id != user.id:
        raise PermissionDenied('forbidden for this patient')


@api_view(['POST'])
@permission_classes([AllowAny])
def register_patient(request):
    """Register a patient.

    Anonymous callers and patients always register as ``SELF`` which
    requires the patient to be an adult.  Returns the generated MRN and,
    when no password was supplied, the initial password.
    """
    s = PatientRegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    user = request.user
    is_staff = bool(user and user.is_authenticated and getattr(user, 'role', '') != 'patient')
    if not is_staff:
        data['registrationType'] = 'SELF'
    patient, initial_password = svc.register_patient(user if is_staff else None, data, request=request)
    payload = {'ok': True, 'data': svc.format_patient(patient)}
    if initial_password:
        payload['initialPassword'] = initial_password
    return Response(payload, status=201)

# ScopedRateThrottle reads the scope from the wrapped APIView class
register_patient.cls.throttle_scope = 'patient_write'


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaff])
def list_patients(request):
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_patients(q.validated_data.get('search'))
    items, pagination = paginate(qs, q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_patient(p) for p in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaff])
def search_patients(request):
    q = PatientSearchSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, total = svc.search_patients(q.validated_data)
    return Response({
        'ok': True,
        'data': [svc.format_patient(p) for p in items],
        'total': total,
        'limit': q.validated_data['limit'],
        'offset': q.validated_data['offset'],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def check_in(request):
    s = CheckInSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = svc.check_in(request.user, s.validated_data['mrn'], request=request)
    return Response({'ok': True, 'data': svc.format_patient(patient)})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def patient_detail(request, pk: int):
    patient = svc.get_patient(pk)
    _ensure_can_view(request.user, patient)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.format_patient(patient)})
    require_role(request.user, STAFF_ROLES)
    s = PatientUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    patient = svc.update_patient(request.user, pk, dict(s.validated_data), request=request)
    return Response({'ok': True, 'data': svc.format_patient(patient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def medical_summary(request, pk: int):
    patient = svc.get_patient(pk)
    _ensure_can_view(request.user, patient)
    return Response({'ok': True, 'data': svc.medical_summary(pk)})
