"""
Typed records for the messaging tables and outbound WebSocket payloads.

Each record knows how to convert to/from a DynamoDB item (boto3 resource
format: plain Python values, numbers come back as Decimal).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from chat.keys import ParticipantKind, kind_of

PREVIEW_MAX_LEN = 100


class MessageType:
    """Message type tag constants."""
    TEXT = "text"
    SYSTEM = "system"


class UserType(str, Enum):
    """Role tag stored on connection records."""
    CLINIC = "Clinic"
    PROFESSIONAL = "Professional"


def iso_now() -> str:
    """UTC timestamp in ISO-8601 with millisecond precision (2025-01-10T12:00:00.000Z)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ms_to_iso(ms: Optional[int]) -> str:
    if not ms:
        return ""
    dt = datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ConnectionRecord:
    """One open WebSocket connection of a participant."""
    participant_key: str
    connection_id: str
    user_type: str
    display: str = ""
    sub: str = ""
    connected_at: int = 0  # epoch ms
    ttl: int = 0  # epoch seconds

    def to_item(self) -> dict:
        return {
            "userKey": self.participant_key,
            "connectionId": self.connection_id,
            "userType": self.user_type,
            "display": self.display or "",
            "sub": self.sub or "",
            "connectedAt": self.connected_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_item(cls, item: dict) -> "ConnectionRecord":
        return cls(
            participant_key=item["userKey"],
            connection_id=item["connectionId"],
            user_type=item.get("userType", ""),
            display=item.get("display", ""),
            sub=item.get("sub", ""),
            connected_at=int(item.get("connectedAt", 0)),
            ttl=int(item.get("ttl", 0)),
        )


@dataclass
class ConversationAggregate:
    """
    Per-pair conversation summary.

    One record per (clinic, professional) pair, never deleted.
    Unread counters are kept independently per side.
    """
    conversation_id: str
    clinic_key: str
    prof_key: str
    clinic_name: str = ""
    prof_name: str = ""
    last_preview: str = ""
    last_message_at: int = 0  # epoch ms
    clinic_unread: int = 0
    prof_unread: int = 0

    def unread_for(self, participant_key: str) -> int:
        """Unread count as seen by the given participant."""
        if participant_key == self.clinic_key:
            return self.clinic_unread
        return self.prof_unread

    def counterpart_of(self, participant_key: str) -> str:
        return self.prof_key if participant_key == self.clinic_key else self.clinic_key

    @classmethod
    def from_item(cls, item: dict) -> "ConversationAggregate":
        return cls(
            conversation_id=item.get("conversationId", ""),
            clinic_key=item.get("clinicKey", ""),
            prof_key=item.get("profKey", ""),
            clinic_name=item.get("clinicName", ""),
            prof_name=item.get("profName", ""),
            last_preview=item.get("lastPreview", ""),
            last_message_at=int(item.get("lastMessageAt", 0)),
            clinic_unread=int(item.get("clinicUnread", 0)),
            prof_unread=int(item.get("profUnread", 0)),
        )


@dataclass
class MessageRecord:
    """A single chat message (immutable once written)."""
    conversation_id: str
    message_id: str
    sender_key: str
    content: str
    timestamp: str
    type: str = MessageType.TEXT

    @property
    def sent_by_clinic(self) -> bool:
        return kind_of(self.sender_key) == ParticipantKind.CLINIC

    def to_item(self) -> dict:
        return {
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "senderKey": self.sender_key,
            "content": self.content,
            "timestamp": self.timestamp,
            "type": self.type,
        }

    @classmethod
    def from_item(cls, item: dict) -> "MessageRecord":
        return cls(
            conversation_id=item["conversationId"],
            message_id=item["messageId"],
            sender_key=item["senderKey"],
            content=item.get("content", ""),
            timestamp=item.get("timestamp", ""),
            type=item.get("type", MessageType.TEXT),
        )

    def to_history_item(self, sender_name: str) -> dict:
        return {
            "messageId": self.message_id,
            "timestamp": self.timestamp,
            "senderKey": self.sender_key,
            "senderName": sender_name,
            "content": self.content,
            "messageType": self.type,
        }


@dataclass
class HistoryPage:
    """One page of messages, newest first."""
    conversation_id: str
    messages: list[MessageRecord] = field(default_factory=list)
    next_key: Optional[str] = None


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    STALE = "stale"
    FAILED = "failed"


@dataclass
class DeliveryResult:
    """Outcome of pushing one payload to one connection."""
    connection_id: str
    status: DeliveryStatus
    error: Optional[str] = None


# =============================================================================
# Outbound payloads (server -> client)
# =============================================================================

def message_payload(
    record: MessageRecord,
    sender_name: str,
    clinic_id: str,
    professional_sub: str,
) -> dict:
    """Chat message push; fields are duplicated under "message" for older clients."""
    flat: dict[str, Any] = {
        "conversationId": record.conversation_id,
        "messageId": record.message_id,
        "senderKey": record.sender_key,
        "senderName": sender_name,
        "content": record.content,
        "timestamp": record.timestamp,
        "messageType": record.type,
        "clinicId": clinic_id,
        "professionalSub": professional_sub,
    }
    return {"type": "message", **flat, "message": dict(flat)}


def ack_payload(
    conversation_id: str,
    message_id: Optional[str] = None,
    action: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> dict:
    payload: dict[str, Any] = {"type": "ack", "conversationId": conversation_id}
    if message_id is not None:
        payload["messageId"] = message_id
    if action is not None:
        payload["action"] = action
    if timestamp is not None:
        payload["timestamp"] = timestamp
    return payload


def error_payload(message: str) -> dict:
    return {"type": "error", "error": message}


def history_payload(conversation_id: str, items: list[dict], next_key: Optional[str]) -> dict:
    return {
        "type": "history",
        "conversationId": conversation_id,
        "items": items,
        "nextKey": next_key,
    }


def conversations_payload(conversations: list[dict]) -> dict:
    return {"type": "conversationsResponse", "conversations": conversations}
