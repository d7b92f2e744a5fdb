from django.db import transaction

from core.exceptions import NotAllowed, RowNotFound
from core.models import Alert
from core.roles import CARE_ROLES
from core.services.audit import log_action


@transaction.atomic
def acknowledge_alert(user, alert_id) -> tuple[Alert, bool]:
    """Mark an alert reviewed.

    Returns ``(alert, changed)``; acknowledging an already acknowledged
    alert is a no-op with ``changed=False``.  The row lock serializes
    concurrent acknowledgements so exactly one of them writes.
    """
    if getattr(user, 'role', None) not in CARE_ROLES:
        raise NotAllowed('only care staff may acknowledge alerts')
    alert = Alert.objects.select_for_update().filter(id=alert_id).first()
    if alert is None:
        raise RowNotFound('alert not found')
    if alert.is_acknowledged:
        return alert, False
    alert.is_acknowledged = True
    alert.acknowledged_by = user
    alert.save(update_fields=['is_acknowledged', 'acknowledged_by'])
    log_action(user=user, action='alert_acknowledge', table_name=Alert.TABLE_NAME, record_id=alert.id)
    return alert, True
