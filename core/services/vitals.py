"""
Vital sign classification and device ingestion.

A reading is checked metric by metric against fixed clinical bands.
Any metric outside its normal band flags the vital (``is_alert``) and
raises one alert per breaching metric: ``critical`` for readings in the
critical band, ``medium`` for the warning band.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from django.utils import timezone

from core.models import Alert, Patient, Vital

NORMAL = 'normal'
WARNING = 'warning'
CRITICAL = 'critical'


@dataclass(frozen=True)
class Band:
    label: str
    critical_low: Optional[float]
    critical_high: Optional[float]
    warning_low: Optional[float]
    warning_high: Optional[float]

    def classify(self, value) -> str:
        if value is None:
            return NORMAL
        if (self.critical_low is not None and value < self.critical_low) or \
                (self.critical_high is not None and value > self.critical_high):
            return CRITICAL
        if (self.warning_low is not None and value < self.warning_low) or \
                (self.warning_high is not None and value > self.warning_high):
            return WARNING
        return NORMAL


BANDS = {
    'heart_rate': Band('Heart rate', 50, 120, 60, 100),
    'oxygen_saturation': Band('SpO2', 90, None, 95, None),
    'temperature': Band('Temperature', 35, 39, 36, 37.5),
}

SEVERITY_FOR = {WARNING: Alert.SEVERITY_MEDIUM, CRITICAL: Alert.SEVERITY_CRITICAL}


def classify(metric: str, value) -> str:
    band = BANDS.get(metric)
    return band.classify(value) if band else NORMAL


def breaches(reading: dict) -> dict[str, str]:
    """Return ``{metric: warning|critical}`` for every out-of-band metric."""
    out = {}
    for metric in BANDS:
        status = classify(metric, reading.get(metric))
        if status != NORMAL:
            out[metric] = status
    return out


@transaction.atomic
def ingest_vital(patient: Patient, reading: dict) -> tuple[Vital, list[Alert]]:
    found = breaches(reading)
    vital = Vital.objects.create(
        patient=patient,
        heart_rate=reading.get('heart_rate'),
        blood_pressure_systolic=reading.get('blood_pressure_systolic'),
        blood_pressure_diastolic=reading.get('blood_pressure_diastolic'),
        oxygen_saturation=reading.get('oxygen_saturation'),
        temperature=reading.get('temperature'),
        respiratory_rate=reading.get('respiratory_rate'),
        device_id=reading.get('device_id'),
        recorded_at=reading.get('recorded_at') or timezone.now(),
        is_alert=bool(found),
    )
    alerts = [
        Alert.objects.create(
            patient=patient,
            vital=vital,
            alert_type=metric,
            severity=SEVERITY_FOR[status],
            message=f"{BANDS[metric].label} {status}: {reading.get(metric)}",
        )
        for metric, status in found.items()
    ]
    return vital, alerts
