"""Blood bank endpoints.  Donor and inventory data is visible to clinical staff."""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import IsClinicalStaff, IsLabStaff
from hms.serializers import blood_bank as ser
from hms.serializers.common import PageQuerySerializer
from hms.services import blood_bank as svc
from hms.services.common import paginate

BloodBankStaff = IsLabStaff | IsClinicalStaff


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def donors(request):
    if request.method == 'POST':
        s = ser.DonorSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        donor = svc.register_donor(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.format_donor(donor)}, status=201)
    q = ser.DonorQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_donors(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_donor(d) for d in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def donor_detail(request, pk: int):
    return Response({'ok': True, 'data': svc.format_donor(svc.get_donor(pk), with_donations=True)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def donations(request):
    if request.method == 'POST':
        s = ser.DonationSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        donation, unit = svc.record_donation(request.user, s.validated_data, request=request)
        return Response({'ok': True, 'data': {**svc.format_donation(donation), 'unit': svc.format_unit(unit)}},
                        status=201)
    q = ser.DonationQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_donations(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_donation(d) for d in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def inventory(request):
    return Response({'ok': True, 'data': svc.inventory()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def units_by_type(request, blood_type: str):
    blood_type = blood_type.upper().replace(' ', '+')
    if blood_type not in svc.BLOOD_TYPES:
        raise ValidationError(f'Unknown blood type {blood_type}')
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.units_by_type(blood_type), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_unit(u) for u in items], 'pagination': pagination})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def crossmatches(request):
    if request.method == 'POST':
        s = ser.CrossmatchRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        cm = svc.request_crossmatch(request.user, s.validated_data)
        return Response({'ok': True, 'data': svc.format_crossmatch(cm)}, status=201)
    return Response({'ok': True, 'data': [svc.format_crossmatch(c) for c in svc.pending_crossmatches()]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def perform_crossmatch(request, pk: int):
    s = ser.CrossmatchResultSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    cm = svc.perform_crossmatch(request.user, pk, s.validated_data['result'], s.validated_data.get('notes') or '')
    return Response({'ok': True, 'data': svc.format_crossmatch(cm)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def issue_unit(request, pk: int):
    s = ser.IssueUnitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    unit = svc.issue_unit(request.user, pk, s.validated_data['patientId'], request=request)
    return Response({'ok': True, 'data': svc.format_unit(unit)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, BloodBankStaff])
def alerts(request):
    q = ser.ExpiringQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    expiring = svc.expiring_units(q.validated_data.get('days'))
    return Response({'ok': True, 'data': {
        'lowStock': svc.low_stock_alerts(),
        'expiring': [svc.format_unit(u) for u in expiring],
    }})
