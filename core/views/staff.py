from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.serializers.auth import StaffCreateSerializer
from core.serializers.rows import serialize_row
from core.services.accounts import create_staff

from ..permissions import IsAdminRole


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def create_staff_account(request):
    """Admins create doctor, nurse, pharmacist and admin accounts."""
    s = StaffCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = create_staff(request.user, **s.validated_data)
    return Response({'ok': True, 'row': serialize_row(user)}, status=201)
