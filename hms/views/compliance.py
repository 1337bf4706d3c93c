"""Compliance endpoints (administrators only)."""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.models import DataRetentionLog
from hms.permissions import IsAdminRole
from hms.serializers import compliance as ser
from hms.serializers.common import PageQuerySerializer
from hms.services import compliance as svc
from hms.services.audit import log_action
from hms.services.common import paginate, split_csv


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def checks(request):
    if request.method == 'POST':
        results = svc.run_checks()
        return Response({'ok': True, 'data': {'summary': svc.summarize(results),
                                              'checks': [svc.format_check(r) for r in results]}})
    return Response({'ok': True, 'data': [svc.format_check(c) for c in svc.stored_checks()]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def report(request):
    return Response({'ok': True, 'data': svc.report(request.user, request=request)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def retention_policies(request):
    return Response({'ok': True, 'data': svc.retention_policies()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def execute_retention(request):
    return Response({'ok': True, 'data': svc.execute_retention(request.user, request=request)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def retention_logs(request):
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = DataRetentionLog.objects.order_by('-executed_at', '-id')
    items, pagination = paginate(qs, q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_retention_log(r) for r in items], 'pagination': pagination})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def audit_logs(request):
    if request.method == 'POST':
        s = ser.AuditEventSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        d = s.validated_data
        entry = log_action(user=request.user, action=d['action'], resource=d['resource'],
                           resource_id=d.get('resourceId') or None, details=d.get('details'),
                           flags=d.get('complianceFlags'), success=d['success'], request=request)
        return Response({'ok': True, 'data': svc.format_audit(entry) if entry else None}, status=201)
    q = ser.AuditQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    params = {**q.validated_data, 'flags': split_csv(q.validated_data.get('flags'))}
    return Response({'ok': True, 'data': svc.query_audit_logs(params)})
