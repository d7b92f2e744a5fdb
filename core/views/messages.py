"""
Direct messages between profiles.

Sending inserts one row; marking a conversation read updates each
unread row individually so subscribers see one update event per
message.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.serializers.care import MessageReadSerializer, MessageSendSerializer
from core.serializers.rows import serialize_row
from core.services.messages import mark_conversation_read, send_message


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def send(request):
    s = MessageSendSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    msg = send_message(request.user, s.validated_data['receiver_id'], s.validated_data['content'])
    return Response({'ok': True, 'row': serialize_row(msg)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def mark_read(request):
    s = MessageReadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    count = mark_conversation_read(request.user, s.validated_data['peer_id'], s.validated_data.get('up_to'))
    return Response({'ok': True, 'updated': count})
