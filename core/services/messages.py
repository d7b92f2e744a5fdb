from typing import Optional

import bleach
from django.db import transaction

from core.exceptions import InvalidInput, RowNotFound
from core.models import Message, User
from core.services.audit import log_action

MAX_LENGTH = 2000


def send_message(sender: User, receiver_id, content: str) -> Message:
    content = bleach.clean((content or '').strip(), strip=True)
    if not content:
        raise InvalidInput('message cannot be empty')
    if len(content) > MAX_LENGTH:
        raise InvalidInput('message too long')
    receiver = User.objects.filter(id=receiver_id, is_active=True).first()
    if receiver is None:
        raise RowNotFound('recipient not found')
    if receiver.pk == sender.pk:
        raise InvalidInput('cannot message yourself')
    msg = Message.objects.create(sender=sender, receiver=receiver, content=content)
    log_action(user=sender, action='message_send', table_name=Message.TABLE_NAME, record_id=msg.id)
    return msg


@transaction.atomic
def mark_conversation_read(user: User, peer_id, up_to: Optional[str] = None) -> int:
    """Mark every unread message from ``peer_id`` to ``user`` as read.

    Rows are saved one by one so each produces its own update event on
    the change feed.
    """
    unread = Message.objects.select_for_update().filter(sender_id=peer_id, receiver=user, is_read=False)
    if up_to:
        anchor = Message.objects.filter(id=up_to, receiver=user).first()
        if anchor is None:
            raise RowNotFound('message not found')
        unread = unread.filter(created_at__lte=anchor.created_at)
    count = 0
    for msg in unread.order_by('created_at'):
        msg.is_read = True
        msg.save(update_fields=['is_read'])
        count += 1
    return count
