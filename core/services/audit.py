import logging
from typing import Any, Dict, Optional

from core.models import AuditEvent, User

logger = logging.getLogger(__name__)


def log_action(*, user: Optional[User], action: str, table_name: Optional[str] = None,
               record_id=None, detail: Optional[Dict[str, Any]] = None) -> AuditEvent:
    logger.info('audit %s by %s on %s/%s', action, getattr(user, 'id', None), table_name, record_id)
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) and user.pk else None,
        action=action,
        table_name=table_name,
        record_id=str(record_id) if record_id is not None else None,
        detail=detail or {},
    )
