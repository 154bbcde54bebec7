"""
In-memory test doubles for the messaging stores and dispatcher.

They follow the same contracts as the DynamoDB-backed classes (including
the unread-counter rules of ConversationStore.record_message) so handler
flows can be tested end to end without AWS.
"""

import time
from typing import Optional

from jose import jwt

from chat.errors import StaleConnectionError
from chat.keys import now_ms
from chat.messages import clamp_limit
from chat.service import ChatService
from chat.types import (
    ConnectionRecord,
    ConversationAggregate,
    DeliveryResult,
    DeliveryStatus,
    HistoryPage,
    MessageRecord,
    PREVIEW_MAX_LEN,
)


def make_access_token(sub: str, groups: list = None, clinic_id: str = None, **extra) -> str:
    """
    Mint a Cognito-shaped access token (HS256, only readable unverified).

    Usage:
        token = make_access_token("P1", groups=["AssociateDentist"], given_name="Pat")
    """
    claims = {"sub": sub, "token_use": "access", "cognito:groups": groups or []}
    if clinic_id:
        claims["custom:clinicId"] = clinic_id
    claims.update(extra)
    return jwt.encode(claims, "test-secret", algorithm="HS256")


class FakeRegistry:
    def __init__(self):
        self.rows: dict[tuple[str, str], ConnectionRecord] = {}

    def register(self, participant_key, connection_id, role, display_name="", subject_id=""):
        record = ConnectionRecord(
            participant_key=participant_key,
            connection_id=connection_id,
            user_type=role,
            display=display_name or "",
            sub=subject_id or "",
            connected_at=now_ms(),
            ttl=int(time.time()) + 86400,
        )
        self.rows[(participant_key, connection_id)] = record
        return record

    def get_by_connection(self, connection_id):
        return [r for (_, cid), r in self.rows.items() if cid == connection_id]

    def unregister(self, connection_id):
        records = self.get_by_connection(connection_id)
        for record in records:
            self.remove(record.participant_key, connection_id)
        return len(records)

    def remove(self, participant_key, connection_id):
        self.rows.pop((participant_key, connection_id), None)

    def list_connections(self, participant_key):
        return [cid for (key, cid) in self.rows if key == participant_key]

    def latest_display(self, participant_key):
        records = [r for (key, _), r in self.rows.items() if key == participant_key]
        if not records:
            return ""
        return max(records, key=lambda r: r.connected_at).display


class FakeConversationStore:
    def __init__(self):
        self.items: dict[str, ConversationAggregate] = {}

    def record_message(
        self,
        conversation_id,
        clinic_key,
        prof_key,
        preview,
        sent_by_clinic,
        clinic_name="",
        prof_name="",
        at_ms=None,
    ):
        convo = self.items.get(conversation_id) or ConversationAggregate(
            conversation_id=conversation_id, clinic_key=clinic_key, prof_key=prof_key
        )
        convo.last_preview = preview[:PREVIEW_MAX_LEN]
        convo.last_message_at = at_ms if at_ms is not None else now_ms()
        if clinic_name:
            convo.clinic_name = clinic_name
        if prof_name:
            convo.prof_name = prof_name
        if sent_by_clinic:
            convo.prof_unread += 1
            convo.clinic_unread = 0
        else:
            convo.clinic_unread += 1
            convo.prof_unread = 0
        self.items[conversation_id] = convo

    def mark_read(self, conversation_id, reader_is_clinic):
        convo = self.items.get(conversation_id)
        if convo is None:
            return False
        if reader_is_clinic:
            convo.clinic_unread = 0
        else:
            convo.prof_unread = 0
        return True

    def get(self, conversation_id):
        return self.items.get(conversation_id)

    def list_for(self, participant_key):
        return [
            c for c in self.items.values()
            if participant_key in (c.clinic_key, c.prof_key)
        ]


class FakeMessageLog:
    def __init__(self):
        self.records: list[MessageRecord] = []

    def append(self, record):
        self.records.append(record)
        return record

    def history(self, conversation_id, limit=50, next_key=None):
        ordered = sorted(
            (r for r in self.records if r.conversation_id == conversation_id),
            key=lambda r: r.message_id,
            reverse=True,
        )
        start = int(next_key) if next_key else 0
        size = clamp_limit(limit)
        page = ordered[start:start + size]
        more = start + size < len(ordered)
        return HistoryPage(
            conversation_id=conversation_id,
            messages=page,
            next_key=str(start + size) if more else None,
        )


class FakeNames:
    def __init__(self, names: Optional[dict] = None):
        self.names = names or {}

    def professional_name(self, sub):
        return self.names.get(f"prof#{sub}", f"User {sub[:6]}")

    def clinic_name(self, clinic_id):
        return self.names.get(f"clinic#{clinic_id}", str(clinic_id))

    def name_for(self, participant_key):
        return self.names.get(participant_key, participant_key.split("#", 1)[1])


class FakeDispatcher:
    """Records every payload; connection ids in `gone` raise StaleConnectionError."""

    def __init__(self, gone=(), failing=()):
        self.sent: list[tuple[str, dict]] = []
        self.gone = set(gone)
        self.failing = set(failing)

    def send(self, connection_id, payload):
        if connection_id in self.gone:
            raise StaleConnectionError(connection_id)
        if connection_id in self.failing:
            raise RuntimeError(f"transport error for {connection_id}")
        self.sent.append((connection_id, payload))

    def fan_out(self, connection_ids, payload):
        results = []
        for cid in dict.fromkeys(connection_ids):
            if cid in self.gone:
                results.append(DeliveryResult(cid, DeliveryStatus.STALE))
            elif cid in self.failing:
                results.append(DeliveryResult(cid, DeliveryStatus.FAILED, error="transport error"))
            else:
                self.sent.append((cid, payload))
                results.append(DeliveryResult(cid, DeliveryStatus.DELIVERED))
        return results

    def sent_to(self, connection_id):
        return [payload for cid, payload in self.sent if cid == connection_id]


def make_service(names: Optional[dict] = None, gone=(), failing=(), with_dispatcher: bool = True) -> ChatService:
    """ChatService wired to in-memory fakes."""
    return ChatService(
        registry=FakeRegistry(),
        conversations=FakeConversationStore(),
        messages=FakeMessageLog(),
        names=FakeNames(names),
        dispatcher=FakeDispatcher(gone=gone, failing=failing) if with_dispatcher else None,
    )
