"""
Derived badge counts.

Every function here is pure: it reads an iterable of rows and returns
scalars.  Screens call them after each reconciliation step, and tests
compare the incremental result with one computed over a fresh snapshot.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Optional

SEVERITIES = ('low', 'medium', 'high', 'critical')


def unacknowledged(rows: Iterable[dict]) -> int:
    return sum(1 for r in rows if not r.get('is_acknowledged'))


def critical_pending(rows: Iterable[dict]) -> int:
    return sum(1 for r in rows if r.get('severity') == 'critical' and not r.get('is_acknowledged'))


def by_severity(rows: Iterable[dict], *, pending_only: bool = True) -> dict[str, int]:
    counts = Counter(
        r.get('severity') for r in rows
        if not (pending_only and r.get('is_acknowledged'))
    )
    return {s: counts.get(s, 0) for s in SEVERITIES}


def unread_for(rows: Iterable[dict], receiver_id) -> int:
    receiver_id = str(receiver_id)
    return sum(1 for r in rows if str(r.get('receiver_id')) == receiver_id and not r.get('is_read'))


def flagged_vitals(rows: Iterable[dict]) -> int:
    return sum(1 for r in rows if r.get('is_alert'))


def pending_prescriptions(rows: Iterable[dict]) -> int:
    return sum(1 for r in rows if r.get('status') == 'active')


def upcoming_appointments(rows: Iterable[dict], now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    count = 0
    for r in rows:
        if r.get('status') not in ('pending', 'confirmed'):
            continue
        scheduled = r.get('scheduled_at')
        if isinstance(scheduled, str):
            scheduled = datetime.fromisoformat(scheduled.replace('Z', '+00:00'))
        if scheduled is not None and scheduled >= now:
            count += 1
    return count


# Badge sets, one per screen kind


def alert_badges(rows: Iterable[dict]) -> dict:
    rows = list(rows)
    return {
        'total': len(rows),
        'unacknowledged': unacknowledged(rows),
        'critical': critical_pending(rows),
    }


def message_badges(rows: Iterable[dict], receiver_id) -> dict:
    rows = list(rows)
    return {'total': len(rows), 'unread': unread_for(rows, receiver_id)}


def vital_badges(rows: Iterable[dict]) -> dict:
    rows = list(rows)
    return {'readings': len(rows), 'flagged': flagged_vitals(rows)}


def prescription_badges(rows: Iterable[dict]) -> dict:
    rows = list(rows)
    return {
        'total': len(rows),
        'pending': pending_prescriptions(rows),
        'dispensed': sum(1 for r in rows if r.get('status') == 'dispensed'),
    }


def appointment_badges(rows: Iterable[dict], now: Optional[datetime] = None) -> dict:
    rows = list(rows)
    return {
        'total': len(rows),
        'upcoming': upcoming_appointments(rows, now),
        'pending': sum(1 for r in rows if r.get('status') == 'pending'),
    }
