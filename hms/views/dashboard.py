from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hms.permissions import IsAdminRole
from hms.services import dashboard


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def overview(request):
    return Response({'ok': True, 'data': dashboard.overview()})
