"""
URL mappings for the CareLink API.

Trailing slashes are deliberately omitted; the frontend calls every
endpoint without one (see ``APPEND_SLASH``).
"""
from django.urls import path

from .auth_views import me_view, refresh_view, signin_view, signout_view, signup_view
from .views import alerts, appointments, dashboard, doctors, health, insights, messages, patients
from .views import prescriptions, rows, staff, vitals

urlpatterns = [
    path('healthz', health.healthz),
    # Authentication
    path('auth/signup', signup_view),
    path('auth/signin', signin_view),
    path('auth/refresh', refresh_view),
    path('auth/signout', signout_view),
    path('auth/me', me_view),
    # Table reads
    path('api/rows/<str:table>', rows.list_rows),
    # Patients and vitals
    path('api/patients', patients.create_patient),
    path('api/patients/<uuid:patient_id>', patients.patient_detail),
    path('api/vitals', vitals.record_vital),
    # Alerts
    path('api/alerts/<uuid:alert_id>/acknowledge', alerts.acknowledge),
    # Messages
    path('api/messages', messages.send),
    path('api/messages/read', messages.mark_read),
    # Appointments
    path('api/appointments', appointments.create_appointment),
    path('api/appointments/<uuid:appointment_id>/status', appointments.appointment_status),
    # Prescriptions
    path('api/prescriptions', prescriptions.create_prescription),
    path('api/prescriptions/<uuid:prescription_id>/dispense', prescriptions.dispense),
    path('api/prescriptions/<uuid:prescription_id>/cancel', prescriptions.cancel),
    # Doctors
    path('api/doctors', doctors.list_doctors),
    path('api/doctor-change-requests', doctors.request_change),
    path('api/doctor-change-requests/<uuid:request_id>/review', doctors.review_change),
    # Staff
    path('api/staff', staff.create_staff_account),
    # Dashboard and navigation
    path('api/dashboard', dashboard.dashboard),
    path('api/routes', dashboard.routes),
    # AI insights
    path('api/insights', insights.insights),
]
