"""
Patient admission and record edits.

Care staff (nurses, admins, hospital doctors) admit patients and edit
their records.  Reads go through the generic table endpoint.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.serializers.patient import PatientCreateSerializer, PatientFieldsSerializer
from core.serializers.rows import serialize_row
from core.services.patients import admit_patient, update_patient

from ..permissions import IsCareStaff


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsCareStaff])
def create_patient(request):
    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    user, patient, password = admit_patient(
        request.user,
        full_name=data.pop('full_name'),
        email=data.pop('email'),
        password=data.pop('password', None) or None,
        assigned_doctor_id=data.pop('assigned_doctor_id', None),
        **data,
    )
    return Response({
        'ok': True,
        'row': serialize_row(patient),
        'profile': serialize_row(user),
        # returned once so staff can hand it to the patient
        'initialPassword': password,
    }, status=201)


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsCareStaff])
def patient_detail(request, patient_id):
    s = PatientFieldsSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    patient = update_patient(request.user, patient_id, **s.validated_data)
    return Response({'ok': True, 'row': serialize_row(patient)})
