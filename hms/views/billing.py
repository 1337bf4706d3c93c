"""Billing endpoints.

Discounts are further restricted to billing managers inside the service.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import BILLING_ROLES, IsBillingStaff, has_role
from hms.serializers import billing as ser
from hms.services import billing as svc
from hms.services.common import paginate


def _bill(b, status=200):
    return Response({'ok': True, 'data': svc.format_bill(b, detail=True)}, status=status)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def bills(request):
    if request.method == 'POST':
        s = ser.BillCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return _bill(svc.create_bill(request.user, s.validated_data, request=request), status=201)
    q = ser.BillQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_bills(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_bill(b) for b in items], 'pagination': pagination})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def package_bill(request):
    s = ser.PackageBillSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _bill(svc.create_package_bill(request.user, s.validated_data, request=request), status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def bill_detail(request, pk: int):
    bill = svc.get_bill(pk)
    user = request.user
    if not has_role(user, BILLING_ROLES):
        # patients may read their own bills
        if user.role != 'patient' or bill.patient.user_id != user.id:
            raise PermissionDenied('forbidden for this bill')
    return _bill(bill)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def apply_discount(request, pk: int):
    s = ser.DiscountSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _bill(svc.apply_discount(request.user, pk, s.validated_data, request=request))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def process_payment(request, pk: int):
    s = ser.PaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    bill, payment = svc.process_payment(request.user, pk, s.validated_data, request=request)
    return Response({'ok': True, 'data': {'bill': svc.format_bill(bill), 'payment': svc.format_payment(payment)}},
                    status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def submit_claim(request, pk: int):
    s = ser.ClaimSubmitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    claim = svc.submit_claim(request.user, pk, s.validated_data, request=request)
    return Response({'ok': True, 'data': svc.format_claim(claim)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def process_claim(request, pk: int):
    s = ser.ClaimProcessSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    claim = svc.process_claim(request.user, pk, s.validated_data, request=request)
    return Response({'ok': True, 'data': svc.format_claim(claim)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def department_report(request):
    q = ser.ReportQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    d = q.validated_data
    return Response({'ok': True, 'data': svc.department_report(d.get('department') or None, d['dateFrom'], d['dateTo'])})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def revenue(request):
    q = ser.ReportQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': svc.revenue_analytics(q.validated_data['dateFrom'], q.validated_data['dateTo'])})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBillingStaff])
def outstanding(request):
    return Response({'ok': True, 'data': svc.outstanding_summary()})
