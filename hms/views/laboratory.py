"""
Laboratory endpoints: catalog, orders and the sample/result workflow,
barcodes, reagents and equipment, quality control and the LIS bridge.
"""
from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.models import LISIntegration
from hms.permissions import LAB_ROLES, IsAdminRole, IsClinicalStaff, IsLabStaff, IsStaff, require_role
from hms.serializers import laboratory as ser
from hms.serializers.common import DateRangeQuerySerializer, PageQuerySerializer, ReasonSerializer
from hms.services import barcode, lis, quality_control as qc
from hms.services import laboratory as svc
from hms.services.common import cached, paginate


def _test_response(test, status=200, detail=True):
    return Response({'ok': True, 'data': svc.format_lab_test(test, detail=detail)}, status=status)


# -- catalog ------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaff])
def catalog(request):
    if request.method == 'POST':
        require_role(request.user, LAB_ROLES)
        s = ser.CatalogCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        item = svc.create_catalog(s.validated_data)
        return Response({'ok': True, 'data': svc.format_catalog(item)}, status=201)
    q = ser.CatalogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_catalog(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_catalog(c) for c in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaff])
def catalog_detail(request, pk: int):
    return Response({'ok': True, 'data': svc.format_catalog(svc.get_catalog(pk))})


# -- orders -------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsLabStaff | IsClinicalStaff])
def lab_tests(request):
    if request.method == 'POST':
        s = ser.LabOrderSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        test = svc.create_lab_test(request.user, s.validated_data, request=request)
        return _test_response(test, status=201, detail=False)
    q = ser.LabTestQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    params = q.validated_data
    items, pagination = paginate(svc.list_lab_tests(params), params['page'], params['pageSize'])
    return Response({'ok': True, 'data': [svc.format_lab_test(t) for t in items], 'pagination': pagination})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff | IsClinicalStaff])
def batch_orders(request):
    s = ser.LabBatchOrderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    tests = svc.create_batch(request.user, s.validated_data, request=request)
    return Response({'ok': True, 'data': [svc.format_lab_test(t) for t in tests]}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def pending_tests(request):
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.pending_tests(), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_lab_test(t) for t in items], 'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff | IsClinicalStaff])
def lab_test_detail(request, pk: int):
    return _test_response(svc.get_lab_test(pk))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def process_order(request, pk: int):
    s = ser.ProcessOrderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _test_response(svc.process_order(request.user, pk, s.validated_data, request=request))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff | IsClinicalStaff])
def collect_sample(request, pk: int):
    s = ser.CollectSampleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    sample = svc.collect_sample(request.user, pk, s.validated_data)
    return Response({'ok': True, 'data': svc.format_sample(sample)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def receive_sample(request, pk: int):
    return _test_response(svc.receive_sample(request.user, pk))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def enter_results(request, pk: int):
    s = ser.EnterResultsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _test_response(svc.enter_results(request.user, pk, s.validated_data['results'], request=request))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsLabStaff])
def update_status(request, pk: int):
    s = ser.LabStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    test = svc.update_status(request.user, pk, s.validated_data['status'], s.validated_data.get('reason') or '')
    return _test_response(test)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff | IsClinicalStaff])
def cancel_test(request, pk: int):
    s = ReasonSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    test = svc.cancel_lab_test(request.user, pk, s.validated_data.get('reason') or '', request=request)
    return _test_response(test)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def statistics(request):
    q = DateRangeQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    params = q.validated_data
    if params.get('dateFrom') or params.get('dateTo'):
        return Response({'ok': True, 'data': svc.statistics(params)})
    return Response(cached('stats:laboratory', lambda: {'ok': True, 'data': svc.statistics()}))


# -- barcodes -----------------------------------------------------------------
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def barcode_lookup(request, code: str):
    kind, entity = barcode.lookup(code)
    if kind == 'sample':
        data = {**svc.format_sample(entity), 'labTest': svc.format_lab_test(entity.lab_test)}
    elif kind == 'reagent':
        data = svc.format_reagent(entity)
    else:
        data = svc.format_equipment(entity)
    return Response({'ok': True, 'type': kind.upper(), 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def barcode_labels(request):
    s = ser.BarcodeLabelsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': barcode.labels(s.validated_data['barcodes'])})


# -- reagents and equipment ---------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def reagents(request):
    if request.method == 'POST':
        s = ser.ReagentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return Response({'ok': True, 'data': svc.format_reagent(svc.register_reagent(s.validated_data))}, status=201)
    q = ser.ReagentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_reagents(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_reagent(r) for r in items], 'pagination': pagination})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def equipment(request):
    if request.method == 'POST':
        s = ser.EquipmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return Response({'ok': True, 'data': svc.format_equipment(svc.register_equipment(s.validated_data))}, status=201)
    q = ser.EquipmentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    items, pagination = paginate(svc.list_equipment(q.validated_data), q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_equipment(e) for e in items], 'pagination': pagination})


# -- quality control ----------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def qc_record(request):
    s = ser.QCRecordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': qc.format_qc(qc.record_qc(request.user, s.validated_data))}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def qc_history(request):
    q = ser.QCQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    if not q.validated_data.get('parameter'):
        raise ValidationError({'parameter': 'This field is required.'})
    runs = qc.qc_history(q.validated_data['parameter'], q.validated_data['days'])
    return Response({'ok': True, 'data': [qc.format_qc(r) for r in runs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def qc_statistics(request):
    q = ser.QCQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': qc.qc_statistics(q.validated_data.get('parameter'), q.validated_data['days'])})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def qc_dashboard(request):
    return Response({'ok': True, 'data': qc.qc_dashboard()})


# -- LIS ----------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def lis_config(request):
    if request.method == 'POST':
        s = ser.LISConfigSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data
        config = LISIntegration.objects.create(
            name=data['name'], endpoint=data['endpoint'], api_key=data['apiKey'],
            timeout=data.get('timeout') or settings.LIS_TIMEOUT, is_active=data['isActive'],
        )
        if config.is_active:
            LISIntegration.objects.exclude(id=config.id).update(is_active=False)
        return Response({'ok': True, 'data': lis.format_config(config)}, status=201)
    configs = LISIntegration.objects.order_by('-id')
    return Response({'ok': True, 'data': [lis.format_config(c) for c in configs]})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabStaff])
def lis_results(request):
    """Inbound results pushed by the LIS for one order."""
    s = ser.LISResultsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    test = lis.receive_results(s.validated_data['orderNumber'], s.validated_data)
    return _test_response(test)

lis_results.cls.throttle_scope = 'lis_inbound'


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def lis_sync_catalog(request):
    return Response({'ok': True, 'data': {'synced': lis.sync_catalog()}})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabStaff])
def lis_order_status(request, order_number: str):
    return Response({'ok': True, 'data': lis.query_order_status(order_number)})
