from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import IsStaff, FRONT_DESK_ROLES, require_role
from hms.serializers.appointment import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentUpdateSerializer,
    DayQuerySerializer,
)
from hms.serializers.common import PageQuerySerializer, ReasonSerializer
from hms.services import appointments as svc
from hms.services.common import cached, paginate


def _own_patient_id(user):
    profile = getattr(user, 'patient_profile', None)
    return profile.id if profile else None


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointments(request):
    user = request.user
    if request.method == 'POST':
        s = AppointmentCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        if user.role == 'patient':
            # patients book for themselves only
            if data['patientId'] != _own_patient_id(user):
                raise PermissionDenied('Patients can only book their own appointments')
        else:
            require_role(user, FRONT_DESK_ROLES)
        appt = svc.create_appointment(user, data, request=request)
        return Response({'ok': True, 'data': svc.format_appointment(appt)}, status=201)

    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    params = dict(q.validated_data)
    if user.role == 'patient':
        params['patientId'] = _own_patient_id(user) or -1
    items, pagination = paginate(svc.list_appointments(params), params['page'], params['pageSize'])
    return Response({'ok': True, 'data': [svc.format_appointment(a) for a in items], 'pagination': pagination})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk: int):
    appt = svc.get_appointment(pk)
    user = request.user
    if user.role == 'patient' and appt.patient.user_id != user.id:
        raise PermissionDenied('forbidden for this appointment')
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.format_appointment(appt)})
    require_role(user, FRONT_DESK_ROLES)
    if request.method == 'DELETE':
        svc.delete_appointment(user, pk, request=request)
        return Response({'ok': True})
    s = AppointmentUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    appt = svc.update_appointment(user, pk, dict(s.validated_data), request=request)
    return Response({'ok': True, 'data': svc.format_appointment(appt)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_appointment(request, pk: int):
    appt = svc.get_appointment(pk)
    user = request.user
    if user.role == 'patient':
        if appt.patient.user_id != user.id:
            raise PermissionDenied('forbidden for this appointment')
    else:
        require_role(user, FRONT_DESK_ROLES)
    s = ReasonSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = svc.cancel_appointment(user, pk, s.validated_data.get('reason'), request=request)
    return Response({'ok': True, 'data': svc.format_appointment(appt)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaff])
def doctor_schedule(request, doctor_id: int):
    q = DayQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    day = q.validated_data.get('date') or timezone.localdate()
    items = svc.doctor_schedule(doctor_id, day)
    return Response({'ok': True, 'date': day.isoformat(), 'data': [svc.format_appointment(a) for a in items]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_appointments(request, patient_id: int):
    user = request.user
    if user.role == 'patient' and _own_patient_id(user) != patient_id:
        raise PermissionDenied('forbidden for this patient')
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.patient_appointments(patient_id), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_appointment(a) for a in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaff])
def appointment_stats(request):
    payload = cached('stats:appointments', lambda: {'ok': True, 'data': svc.appointment_stats()})
    return Response(payload)
