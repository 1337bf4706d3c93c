"""Staff endpoints, one route family per staff type (``staff/doctors``, ``staff/nurses``, ...)."""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import ADMIN_ROLES, IsStaff, require_role
from hms.serializers import staff as ser
from hms.services import staff as svc
from hms.services.common import paginate


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaff])
def staff_list(request, segment: str):
    staff_type = svc.staff_type_for(segment)
    if request.method == 'POST':
        require_role(request.user, ADMIN_ROLES)
        s = ser.StaffSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        member = svc.create_staff(request.user, staff_type, s.validated_data, request=request)
        return Response({'ok': True, 'data': svc.format_staff(member)}, status=201)
    q = ser.StaffQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = svc.list_staff(staff_type, q.validated_data)
    items, pagination = paginate(qs, q.validated_data['page'], q.validated_data['pageSize'])
    return Response({'ok': True, 'data': [svc.format_staff(m) for m in items], 'pagination': pagination})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaff])
def staff_detail(request, segment: str, pk: int):
    staff_type = svc.staff_type_for(segment)
    if request.method == 'GET':
        return Response({'ok': True, 'data': svc.format_staff(svc.get_staff(staff_type, pk))})
    require_role(request.user, ADMIN_ROLES)
    if request.method == 'DELETE':
        svc.delete_staff(request.user, staff_type, pk, request=request)
        return Response({'ok': True, 'data': {'deleted': True}})
    s = ser.StaffUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    member = svc.update_staff(request.user, staff_type, pk, s.validated_data, request=request)
    return Response({'ok': True, 'data': svc.format_staff(member)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaff])
def stats(request):
    return Response({'ok': True, 'data': svc.statistics()})
