"""
Event-to-Message Bridge Lambda

Triggered by an EventBridge rule on marketplace shift events
(Source "denti-pal.api", DetailType "ShiftEvent"). Turns each event into a
system chat message between the clinic and the professional.

Event format:
{
    "detail": {
        "eventType": "shift-applied" | "invite-accepted" | "shift-cancelled" | "shift-scheduled",
        "clinicId": "C1",
        "professionalSub": "P1",
        "shiftDetails": {"role": "Hygienist", "date": "2025-01-10", "rate": 50}   // Optional
    }
}

Workflow:
1. Parse + validate detail (missing ids or unknown eventType fail the invocation)
2. Write the system Message Record
3. Update the Conversation Aggregate exactly like a user-sent message
4. Push to the de-duplicated union of both parties' live connections

Failures are re-raised so EventBridge retries the delivery (at-least-once).

Environment Variables:
- WS_ENDPOINT: WebSocket management endpoint (https://{api}.execute-api.{region}.amazonaws.com/{stage})
- MESSAGES_TABLE / CONVERSATIONS_TABLE / CONNECTIONS_TABLE

Log Format:
All logs use prefix [EventToMessage:event=X:convo=Y] for CloudWatch filtering.
"""

import json
import logging
from typing import Optional

from chat.dispatcher import Dispatcher
from chat.events import ShiftEvent
from chat.keys import conversation_id_for
from chat.service import ChatService, SendResult
from chat.types import MessageType
from config.settings import settings
from utils.worker_logging import EventLogContext

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def build_service() -> ChatService:
    """Service wired to WS_ENDPOINT; real-time delivery is skipped when it is unset."""
    dispatcher: Optional[Dispatcher] = None
    if settings.WS_ENDPOINT:
        dispatcher = Dispatcher(settings.WS_ENDPOINT)
    return ChatService(dispatcher=dispatcher)


def process_event(event: ShiftEvent, service: ChatService) -> SendResult:
    """
    Store and deliver the system message for one shift event.

    Args:
        event: Parsed shift event
        service: Messaging pipeline

    Returns:
        SendResult with the stored record and delivery results
    """
    log = EventLogContext(
        event.event_type.value,
        conversation_id_for(event.clinic_id, event.professional_sub),
    )

    result = service.send_message(
        event.clinic_id,
        event.professional_sub,
        sender_key=event.sender_key,
        content=event.render(),
        message_type=MessageType.SYSTEM,
        notify_sender=True,  # both parties see system messages
    )

    delivered = len(result.deliveries) - len(result.stale_connections) - len(result.failed_connections)
    log.log_info(
        f"System message {result.record.message_id} sent: "
        f"{delivered} delivered, {len(result.stale_connections)} stale, "
        f"{len(result.failed_connections)} failed"
    )
    return result


def handler(event: dict, context, _build_service=build_service) -> dict:
    """
    Lambda handler for EventBridge shift events.

    Args:
        event: EventBridge event with "detail"
        context: Lambda context (unused)
        _build_service: ChatService factory (for testing)

    Returns:
        {"statusCode": 200}

    Raises:
        Any error, so the invocation is marked failed and retried
    """
    detail = event.get("detail")
    event_type = detail.get("eventType", "unknown") if isinstance(detail, dict) else "unknown"
    log = EventLogContext(event_type)
    log.log_info(f"Received event: {json.dumps(event, default=str)}")

    try:
        shift_event = ShiftEvent.from_detail(detail)
        process_event(shift_event, _build_service())
        return {"statusCode": 200}
    except Exception as e:
        log.log_exception(f"Failed to process event: {e}")
        raise
