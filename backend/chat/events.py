"""
Marketplace domain events and their system-message templates.

Events arrive from EventBridge (at-least-once) with:
{
    "detail": {
        "eventType": "shift-scheduled",
        "clinicId": "C1",
        "professionalSub": "P1",
        "shiftDetails": {"role": "Hygienist", "date": "2025-01-10", "rate": 50}
    }
}

Each event type maps to a fixed sender side and a canned message:

    shift-applied    professional  "Shift applied: {role} on {date}{rate}. Confirm?"
    invite-accepted  professional  "Invite accepted: {role} on {date}{rate}."
    shift-cancelled  clinic        "Shift cancelled: {role} on {date}."
    shift-scheduled  clinic        "Shift scheduled: {role} on {date}{rate}. Questions? Reply here!"
"""

import json
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

import boto3

from chat.errors import UnknownEventTypeError, ValidationError
from chat.keys import clinic_key, prof_key
from config.settings import settings

logger = logging.getLogger(__name__)

EVENT_DETAIL_TYPE = "ShiftEvent"
DEFAULT_ROLE = "Professional"
DEFAULT_DATE = "TBD"


class EventType(str, Enum):
    """Shift lifecycle events that produce a system chat message."""
    SHIFT_APPLIED = "shift-applied"
    INVITE_ACCEPTED = "invite-accepted"
    SHIFT_CANCELLED = "shift-cancelled"
    SHIFT_SCHEDULED = "shift-scheduled"

    @classmethod
    def list_all(cls) -> list[str]:
        return [event_type.value for event_type in cls]

    @classmethod
    def from_string(cls, value) -> "EventType":
        """
        Convert string to EventType.

        Raises:
            UnknownEventTypeError: If value is not a known event type
        """
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownEventTypeError(f"Unknown eventType: {value}")


# Sender side and template per event type. {rate} is "" or " at $<rate>/hr".
_TEMPLATES: dict[EventType, tuple[bool, str]] = {
    EventType.SHIFT_APPLIED: (False, "Shift applied: {role} on {date}{rate}. Confirm?"),
    EventType.INVITE_ACCEPTED: (False, "Invite accepted: {role} on {date}{rate}."),
    EventType.SHIFT_CANCELLED: (True, "Shift cancelled: {role} on {date}."),
    EventType.SHIFT_SCHEDULED: (True, "Shift scheduled: {role} on {date}{rate}. Questions? Reply here!"),
}


def format_rate(rate) -> str:
    """
    Rate suffix for templates: " at $50/hr", or "" when rate is missing/zero.

    Integral values drop the decimal part (50.0 -> "$50/hr").
    NaN and infinity render as-is.
    """
    if not rate:
        return ""
    if isinstance(rate, (float, Decimal)) and math.isfinite(rate) and rate == int(rate):
        rate = int(rate)
    return f" at ${rate}/hr"


@dataclass
class ShiftDetails:
    role: Optional[str] = None
    date: Optional[str] = None
    rate: Optional[float] = None

    def to_dict(self) -> dict:
        data = {}
        if self.role:
            data["role"] = self.role
        if self.date:
            data["date"] = self.date
        if self.rate:
            data["rate"] = self.rate
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ShiftDetails":
        data = data or {}
        return cls(role=data.get("role"), date=data.get("date"), rate=data.get("rate"))


@dataclass
class ShiftEvent:
    """Normalized domain event (EventBridge detail)."""
    event_type: EventType
    clinic_id: str
    professional_sub: str
    shift_details: ShiftDetails = field(default_factory=ShiftDetails)

    @property
    def clinic_key(self) -> str:
        return clinic_key(self.clinic_id)

    @property
    def prof_key(self) -> str:
        return prof_key(self.professional_sub)

    @property
    def from_clinic(self) -> bool:
        return _TEMPLATES[self.event_type][0]

    @property
    def sender_key(self) -> str:
        return self.clinic_key if self.from_clinic else self.prof_key

    def render(self) -> str:
        """System message content for this event."""
        template = _TEMPLATES[self.event_type][1]
        return template.format(
            role=self.shift_details.role or DEFAULT_ROLE,
            date=self.shift_details.date or DEFAULT_DATE,
            rate=format_rate(self.shift_details.rate),
        )

    def to_detail(self) -> dict:
        return {
            "eventType": self.event_type.value,
            "clinicId": self.clinic_id,
            "professionalSub": self.professional_sub,
            "shiftDetails": self.shift_details.to_dict(),
        }

    @classmethod
    def from_detail(cls, detail) -> "ShiftEvent":
        """
        Parse an EventBridge detail (dict or JSON string).

        Raises:
            ValidationError: If clinicId or professionalSub is missing
            UnknownEventTypeError: If eventType is not recognized
        """
        if isinstance(detail, str):
            detail = json.loads(detail)
        detail = detail or {}

        clinic_id = str(detail.get("clinicId") or "").strip()
        professional_sub = str(detail.get("professionalSub") or "").strip()
        if not clinic_id or not professional_sub:
            raise ValidationError("Missing clinicId or professionalSub in event detail")

        return cls(
            event_type=EventType.from_string(detail.get("eventType")),
            clinic_id=clinic_id,
            professional_sub=professional_sub,
            shift_details=ShiftDetails.from_dict(detail.get("shiftDetails")),
        )


def publish_shift_event(event: ShiftEvent, client=None) -> str:
    """
    Put a shift event on the EventBridge bus.

    Args:
        event: Event to publish
        client: EventBridge client (default: boto3 "events" client)

    Returns:
        EventBridge event id

    Raises:
        RuntimeError: If EventBridge rejects the entry
    """
    client = client or boto3.client("events", region_name=settings.AWS_REGION)
    response = client.put_events(
        Entries=[{
            "Source": settings.EVENT_SOURCE,
            "DetailType": EVENT_DETAIL_TYPE,
            "Detail": json.dumps(event.to_detail()),
            "EventBusName": settings.EVENT_BUS_NAME,
        }]
    )
    entry = (response.get("Entries") or [{}])[0]
    if response.get("FailedEntryCount") or entry.get("ErrorCode"):
        logger.error(
            f"PutEvents failed for {event.event_type.value}: "
            f"{entry.get('ErrorCode')} {entry.get('ErrorMessage')}"
        )
        raise RuntimeError(f"Failed to publish {event.event_type.value} event")

    logger.info(f"Published {event.event_type.value} for clinic={event.clinic_id} prof={event.professional_sub}")
    return entry.get("EventId", "")
