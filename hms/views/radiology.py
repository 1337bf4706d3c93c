from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import IsClinicalStaff, IsRadiologyStaff
from hms.serializers import radiology as ser
from hms.serializers.common import ReasonSerializer
from hms.services import dicom
from hms.services import radiology as svc
from hms.services.common import cached, paginate


def _ok(test, status=200):
    return Response({'ok': True, 'data': svc.format_radiology_test(test, detail=True)}, status=status)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsRadiologyStaff | IsClinicalStaff])
def radiology_tests(request):
    if request.method == 'POST':
        s = ser.RadiologyCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return _ok(svc.create_radiology_test(request.user, s.validated_data, request=request), status=201)
    q = ser.RadiologyQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    params = q.validated_data
    items, pagination = paginate(svc.list_radiology_tests(params), params['page'], params['pageSize'])
    return Response({'ok': True, 'data': [svc.format_radiology_test(t) for t in items], 'pagination': pagination})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsRadiologyStaff | IsClinicalStaff])
def radiology_detail(request, pk: int):
    if request.method == 'GET':
        return _ok(svc.get_radiology_test(pk))
    s = ser.RadiologyUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return _ok(svc.update_radiology_test(request.user, pk, s.validated_data))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRadiologyStaff])
def schedule(request, pk: int):
    s = ser.ScheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _ok(svc.schedule(request.user, pk, s.validated_data['scheduledDate']))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRadiologyStaff])
def start(request, pk: int):
    return _ok(svc.start(request.user, pk))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRadiologyStaff])
def complete(request, pk: int):
    s = ser.ReportSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _ok(svc.complete(request.user, pk, s.validated_data, request=request))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRadiologyStaff | IsClinicalStaff])
def cancel(request, pk: int):
    s = ReasonSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return _ok(svc.cancel(request.user, pk, s.validated_data.get('reason') or '', request=request))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRadiologyStaff])
@parser_classes([MultiPartParser, FormParser])
def upload_dicom(request, pk: int):
    test = svc.get_radiology_test(pk)
    s = ser.DicomUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    study = dicom.store_upload(request.user, test, s.validated_data['file'])
    return Response({'ok': True, 'data': dicom.format_study(study)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsRadiologyStaff])
def stats(request):
    q = ser.StatsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    if q.validated_data.get('date'):
        return Response({'ok': True, 'data': svc.statistics(q.validated_data['date'])})
    return Response(cached('stats:radiology', lambda: {'ok': True, 'data': svc.statistics()}))
