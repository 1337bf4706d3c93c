from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import PHARMACY_ROLES, IsClinicalStaff, IsPharmacyStaff, IsStaff, require_role
from hms.serializers import pharmacy as ser
from hms.serializers.common import PageQuerySerializer
from hms.services import pharmacy as svc
from hms.services.common import cached, paginate


def _med(m, status=200):
    return Response({'ok': True, 'data': svc.format_medication(m)}, status=status)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaff])
def medications(request):
    if request.method == 'POST':
        require_role(request.user, PHARMACY_ROLES)
        s = ser.MedicationSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return _med(svc.create_medication(request.user, s.validated_data), status=201)
    q = ser.MedicationQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_medications(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_medication(m) for m in items], 'pagination': pagination})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaff])
def medication_detail(request, pk: int):
    if request.method == 'GET':
        return _med(svc.get_medication(pk))
    require_role(request.user, PHARMACY_ROLES)
    if request.method == 'DELETE':
        return _med(svc.deactivate_medication(pk))
    s = ser.MedicationSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return _med(svc.update_medication(pk, s.validated_data))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def update_stock(request, pk: int):
    s = ser.StockUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    d = s.validated_data
    return _med(svc.update_stock(request.user, pk, d['quantity'], d['operation'], d.get('reason') or ''))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def inventory_logs(request, pk: int):
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.inventory_logs(pk), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_inventory_log(x) for x in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def low_stock(request):
    return Response({'ok': True, 'data': [svc.format_medication(m) for m in svc.low_stock()]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def expiring(request):
    q = ser.DaysQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': [svc.format_medication(m) for m in svc.expiring(q.validated_data.get('days'))]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff | IsClinicalStaff])
def prescriptions(request):
    s = ser.PrescriptionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rx = svc.create_prescription(request.user, s.validated_data, request=request)
    return Response({'ok': True, 'data': svc.format_prescription(rx)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def prescription_detail(request, pk: int):
    rx = svc.get_prescription(pk)
    user = request.user
    if user.role == 'patient' and rx.patient.user_id != user.id:
        raise PermissionDenied('forbidden for this prescription')
    return Response({'ok': True, 'data': svc.format_prescription(rx)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_prescriptions(request, patient_id: int):
    user = request.user
    if user.role == 'patient':
        profile = getattr(user, 'patient_profile', None)
        if not profile or profile.id != patient_id:
            raise PermissionDenied('forbidden for this patient')
    q = ser.PrescriptionQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.patient_prescriptions(patient_id, q.validated_data.get('status'))
    items, pagination = paginate(qs, q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_prescription(p) for p in items], 'pagination': pagination})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def dispense(request, pk: int):
    rx = svc.dispense(request.user, pk, request=request)
    return Response({'ok': True, 'data': svc.format_prescription(rx)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def stats(request):
    return Response(cached('stats:pharmacy', lambda: {'ok': True, 'data': svc.statistics()}))
