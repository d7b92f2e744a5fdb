"""
Management command to populate a development database with demo data.

Idempotent: accounts are matched by email and reset to the demo
password, clinical rows are only added for patients that have none.
"""
import random
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.models import Appointment, Message, Patient, Prescription, User
from core.roles import Role
from core.services.vitals import ingest_vital

DEMO_PASSWORD = 'carelink-demo-123'

STAFF = [
    ('admin@carelink.test', 'Ada Admin', Role.ADMIN, ''),
    ('doctor@carelink.test', 'Dan Doctor', Role.HOSPITAL_DOCTOR, 'Cardiology'),
    ('online@carelink.test', 'Olive Online', Role.ONLINE_DOCTOR, 'General practice'),
    ('nurse@carelink.test', 'Nia Nurse', Role.NURSE, ''),
    ('pharmacist@carelink.test', 'Phil Pharmacist', Role.PHARMACIST, ''),
]

PATIENTS = [
    ('patient@carelink.test', 'Pat Patient', '101'),
    ('patient2@carelink.test', 'Paula Second', '102'),
    ('patient3@carelink.test', 'Peter Third', None),
]


class Command(BaseCommand):
    help = 'Create one account per role plus demo patients, vitals, alerts and messages.'

    def add_arguments(self, parser):
        parser.add_argument('--readings', type=int, default=6, help='vital readings per new patient')
        parser.add_argument('--seed', type=int, default=None, help='random seed for reproducible readings')

    def handle(self, *args, **opts):
        rng = random.Random(opts['seed'])
        with transaction.atomic():
            staff = {role: self._account(email, name, role, department=dept)
                     for email, name, role, dept in STAFF}
            doctor = staff[Role.HOSPITAL_DOCTOR]
            for email, name, room in PATIENTS:
                user = self._account(email, name, Role.PATIENT)
                patient, created = Patient.objects.get_or_create(
                    user=user, defaults={'assigned_doctor': doctor, 'room_number': room},
                )
                if created or not patient.vitals.exists():
                    self._clinical_history(patient, doctor, staff[Role.ONLINE_DOCTOR], rng, opts['readings'])
                self.stdout.write(self.style.SUCCESS(f'ok: {email} (patient)'))
        self.stdout.write(self.style.SUCCESS(f'Demo data ready; every account uses password {DEMO_PASSWORD!r}.'))

    def _account(self, email, full_name, role, department=''):
        user = User.objects.filter(email=email).first()
        if user is None:
            user = User.objects.create_user(email=email, password=DEMO_PASSWORD, full_name=full_name,
                                            role=role, department=department, is_staff=role == Role.ADMIN)
        else:
            user.set_password(DEMO_PASSWORD)
            user.role = role
            user.is_active = True
            user.save(update_fields=['password', 'role', 'is_active'])
        if role != Role.PATIENT:
            self.stdout.write(self.style.SUCCESS(f'ok: {email} ({role})'))
        return user

    def _clinical_history(self, patient, doctor, online_doctor, rng, readings):
        now = timezone.now()
        for i in range(readings, 0, -1):
            ingest_vital(patient, {
                'heart_rate': rng.randint(55, 130),
                'blood_pressure_systolic': rng.randint(100, 150),
                'blood_pressure_diastolic': rng.randint(60, 95),
                'oxygen_saturation': round(rng.uniform(88, 100), 1),
                'temperature': round(rng.uniform(36.0, 39.5), 1),
                'respiratory_rate': rng.randint(12, 24),
                'device_id': f'demo-monitor-{patient.room_number or "home"}',
                'recorded_at': now - timedelta(minutes=15 * i),
            })
        Appointment.objects.create(
            patient=patient, doctor=online_doctor, appointment_type=Appointment.TYPE_ONLINE,
            scheduled_at=now + timedelta(days=rng.randint(1, 10), hours=rng.randint(0, 8)),
        )
        Prescription.objects.create(
            patient=patient, doctor=doctor, diagnosis='Hypertension',
            medications=[{'name': 'Amlodipine', 'dosage': '5 mg', 'frequency': 'once daily'}],
            instructions='Take in the morning.',
        )
        Message.objects.create(sender=doctor, receiver=patient.user,
                               content='Your latest readings are in. Let me know how you feel today.')
