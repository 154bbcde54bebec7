"""
Messaging pipeline shared by the WebSocket session handler, the domain-event
bridge and the REST pull API.

Send path (user or system message):
    1. append Message Record
    2. update Conversation Aggregate (recipient unread +1, sender unread 0)
    3. look up recipients' connections in the Registry
    4. fan out the message payload, pruning stale connections

Writes happen before delivery, so a message is always available to the
pull paths (history / conversations) even if every push fails.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from chat.conversations import ConversationStore
from chat.dispatcher import Dispatcher
from chat.errors import ValidationError
from chat.keys import (
    ParticipantKind,
    clinic_key,
    conversation_id_for,
    kind_of,
    new_message_id,
    prof_key,
)
from chat.messages import DEFAULT_PAGE_SIZE, MessageLog
from chat.names import NameResolver
from chat.registry import ConnectionRegistry
from chat.types import (
    DeliveryResult,
    DeliveryStatus,
    MessageRecord,
    MessageType,
    iso_now,
    message_payload,
    ms_to_iso,
)

logger = logging.getLogger(__name__)

MAX_CONTENT_LEN = 1000


def require_parties(clinic_id, professional_sub) -> tuple[str, str]:
    """
    Normalize and require both conversation parties.

    Raises:
        ValidationError: If either id is missing or blank
    """
    clinic = str(clinic_id).strip() if clinic_id is not None else ""
    prof = str(professional_sub).strip() if professional_sub is not None else ""
    if not clinic or not prof:
        raise ValidationError("Missing clinicId or professionalSub")
    return clinic, prof


def validate_content(content) -> str:
    """
    Require non-empty content of at most 1000 characters.

    Raises:
        ValidationError: If content is missing, not a string, empty or too long
    """
    if not isinstance(content, str) or not content.strip() or len(content) > MAX_CONTENT_LEN:
        raise ValidationError(
            f"Missing or invalid content (1-{MAX_CONTENT_LEN} characters required)"
        )
    return content


@dataclass
class SendResult:
    """Outcome of one send: the stored record plus per-connection delivery results."""
    record: MessageRecord
    sender_name: str
    deliveries: list[DeliveryResult] = field(default_factory=list)

    @property
    def stale_connections(self) -> list[str]:
        return [d.connection_id for d in self.deliveries if d.status == DeliveryStatus.STALE]

    @property
    def failed_connections(self) -> list[str]:
        return [d.connection_id for d in self.deliveries if d.status == DeliveryStatus.FAILED]


class ChatService:
    """Composes the stores, name resolution and dispatcher."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        conversations: Optional[ConversationStore] = None,
        messages: Optional[MessageLog] = None,
        names: Optional[NameResolver] = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        self.registry = registry or ConnectionRegistry()
        self.conversations = conversations or ConversationStore()
        self.messages = messages or MessageLog()
        self.names = names or NameResolver(registry=self.registry)
        self.dispatcher = dispatcher

    # =========================================================================
    # Send path
    # =========================================================================

    def send_message(
        self,
        clinic_id: str,
        professional_sub: str,
        sender_key: str,
        content: str,
        message_type: str = MessageType.TEXT,
        sender_display: str = "",
        notify_sender: bool = False,
    ) -> SendResult:
        """
        Store a message, update the aggregate and push it to live connections.

        Args:
            clinic_id: Clinic side of the conversation
            professional_sub: Professional side of the conversation
            sender_key: clinic#<id> or prof#<sub> (must be one of the two parties)
            content: Message text (callers validate user content beforehand)
            message_type: "text" (default), client-supplied type, or "system"
            sender_display: Display name the sender registered with, if known
            notify_sender: Also push to the sender's own connections (system messages)

        Returns:
            SendResult with the stored record and delivery results
        """
        c_key = clinic_key(clinic_id)
        p_key = prof_key(professional_sub)
        if sender_key not in (c_key, p_key):
            raise ValidationError("Sender is not a party to this conversation")

        sent_by_clinic = kind_of(sender_key) == ParticipantKind.CLINIC
        record = MessageRecord(
            conversation_id=conversation_id_for(clinic_id, professional_sub),
            message_id=new_message_id(system=message_type == MessageType.SYSTEM),
            sender_key=sender_key,
            content=content,
            timestamp=iso_now(),
            type=message_type or MessageType.TEXT,
        )
        self.messages.append(record)

        prof_name = self.names.professional_name(professional_sub)
        clinic_name = (sent_by_clinic and sender_display) or self.names.clinic_name(clinic_id)
        sender_name = clinic_name if sent_by_clinic else prof_name

        self.conversations.record_message(
            conversation_id=record.conversation_id,
            clinic_key=c_key,
            prof_key=p_key,
            preview=content,
            sent_by_clinic=sent_by_clinic,
            clinic_name=clinic_name,
            prof_name=prof_name,
        )

        recipient_key = p_key if sent_by_clinic else c_key
        targets = [recipient_key, sender_key] if notify_sender else [recipient_key]
        payload = message_payload(record, sender_name, str(clinic_id), str(professional_sub))
        deliveries = self.deliver(targets, payload)

        return SendResult(record=record, sender_name=sender_name, deliveries=deliveries)

    def deliver(self, participant_keys: list[str], payload: dict) -> list[DeliveryResult]:
        """
        Push a payload to every live connection of the given participants.

        Connection ids found under more than one participant are sent once.
        Stale connections are removed from the registry; other failures are
        reported in the results only.
        """
        if self.dispatcher is None:
            logger.warning("No WebSocket endpoint configured, skipping real-time delivery")
            return []

        owners: dict[str, list[str]] = {}
        for key in dict.fromkeys(participant_keys):
            for connection_id in self.registry.list_connections(key):
                owners.setdefault(connection_id, []).append(key)

        results = self.dispatcher.fan_out(list(owners), payload)

        for result in results:
            if result.status == DeliveryStatus.STALE:
                for key in owners.get(result.connection_id, []):
                    self.prune(key, result.connection_id)
            elif result.status == DeliveryStatus.FAILED:
                logger.error(
                    f"Delivery failed: connection={result.connection_id} "
                    f"type={payload.get('type')} error={result.error}"
                )
        return results

    def prune(self, participant_key: str, connection_id: str) -> None:
        """Best-effort removal of a stale connection row."""
        try:
            self.registry.remove(participant_key, connection_id)
        except Exception as e:
            logger.warning(f"Failed to prune stale connection {connection_id}: {e}")

    # =========================================================================
    # Read paths
    # =========================================================================

    def mark_read(self, clinic_id: str, professional_sub: str, reader_is_clinic: bool) -> str:
        """Zero the reader's unread counter. Returns the conversation id."""
        convo_id = conversation_id_for(clinic_id, professional_sub)
        self.conversations.mark_read(convo_id, reader_is_clinic=reader_is_clinic)
        return convo_id

    def history(
        self,
        clinic_id: str,
        professional_sub: str,
        limit: Any = DEFAULT_PAGE_SIZE,
        next_key: Union[str, dict, None] = None,
    ) -> dict:
        """
        One page of history with sender names resolved.

        Returns:
            {"conversationId", "items": [...], "nextKey"}
        """
        convo_id = conversation_id_for(clinic_id, professional_sub)
        page = self.messages.history(convo_id, limit=limit, next_key=next_key)

        prof_name = self.names.professional_name(professional_sub)
        clinic_name = self.names.clinic_name(clinic_id)

        items = []
        for record in page.messages:
            sender_name = clinic_name if record.sent_by_clinic else prof_name
            items.append(record.to_history_item(sender_name))

        return {"conversationId": convo_id, "items": items, "nextKey": page.next_key}

    def list_conversations(self, participant_key: str) -> list[dict]:
        """
        Conversation summaries for a participant, most recent first.

        Returns:
            [{"conversationId", "recipientName", "lastMessage", "lastMessageAt", "unreadCount"}]
        """
        # GSI order is eventually consistent; sort again in memory
        conversations = sorted(
            self.conversations.list_for(participant_key),
            key=lambda c: c.last_message_at,
            reverse=True,
        )
        summaries = []
        for convo in conversations:
            counterpart = convo.counterpart_of(participant_key)
            summaries.append({
                "conversationId": convo.conversation_id,
                "recipientName": self.names.name_for(counterpart) if counterpart else "",
                "lastMessage": convo.last_preview,
                "lastMessageAt": ms_to_iso(convo.last_message_at),
                "unreadCount": convo.unread_for(participant_key),
            })
        return summaries
