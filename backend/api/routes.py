"""
REST pull API for conversations.

Clients that are not connected over WebSocket (or missed pushes while
offline) read the same conversation aggregates and message log here.
"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.models import (
    AckResponse,
    ConversationRef,
    ConversationsResponse,
    HistoryResponse,
    ShiftEventRequest,
    ShiftEventResponse,
)
from auth.claims import UserClaims, authorize_party
from auth.dependencies import get_current_user
from auth.models import UserInfo
from chat.events import EventType, ShiftDetails, ShiftEvent, publish_shift_event
from chat.messages import DEFAULT_PAGE_SIZE
from chat.service import ChatService, require_parties

logger = logging.getLogger(__name__)

router = APIRouter()


def get_chat_service() -> ChatService:
    """Service without a dispatcher: the pull API never pushes."""
    return ChatService()


def get_event_publisher() -> Callable[[ShiftEvent], str]:
    return publish_shift_event


@router.get("/user", response_model=UserInfo)
async def get_user(current_user: UserClaims = Depends(get_current_user)):
    """
    Get current user identity (protected endpoint)

    Requires a Cognito access token:
        Authorization: Bearer <access_token>
    """
    return UserInfo(
        user_type=current_user.user_type.value,
        sub=current_user.sub,
        clinic_id=current_user.clinic_id,
        email=current_user.email,
        name=current_user.name,
        groups=current_user.groups,
        participant_key=current_user.participant_key,
    )


@router.get("/conversations", response_model=ConversationsResponse)
def list_conversations(
    current_user: UserClaims = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Caller's conversations, most recently active first."""
    return ConversationsResponse(
        conversations=service.list_conversations(current_user.participant_key)
    )


@router.get("/conversations/history", response_model=HistoryResponse)
def get_history(
    clinicId: str = Query(...),
    professionalSub: str = Query(...),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    nextKey: Optional[str] = Query(None),
    current_user: UserClaims = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """
    One page of messages, newest first.

    Query params:
        clinicId, professionalSub: conversation parties
        limit: page size (default 50, max 200)
        nextKey: opaque token from the previous page
    """
    clinic_id, professional_sub = require_parties(clinicId, professionalSub)
    page = service.history(clinic_id, professional_sub, limit=limit, next_key=nextKey)
    return HistoryResponse(**page)


@router.post("/conversations/read", response_model=AckResponse)
def mark_read(
    request: ConversationRef,
    current_user: UserClaims = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Zero the caller's unread counter for a conversation."""
    clinic_id, professional_sub = require_parties(request.clinicId, request.professionalSub)
    authorize_party(current_user, clinic_id, professional_sub)
    convo_id = service.mark_read(clinic_id, professional_sub, reader_is_clinic=current_user.is_clinic)
    return AckResponse(conversationId=convo_id, action="markRead")


@router.post("/events/shift", response_model=ShiftEventResponse, status_code=status.HTTP_202_ACCEPTED)
def publish_event(
    request: ShiftEventRequest,
    current_user: UserClaims = Depends(get_current_user),
    publish: Callable[[ShiftEvent], str] = Depends(get_event_publisher),
):
    """
    Publish a shift event; the bridge turns it into a system message.

    Example:
        POST /api/events/shift
        {
            "eventType": "shift-scheduled",
            "clinicId": "C1",
            "professionalSub": "P1",
            "shiftDetails": {"role": "Hygienist", "date": "2025-01-10", "rate": 50}
        }
    """
    clinic_id, professional_sub = require_parties(request.clinicId, request.professionalSub)
    authorize_party(current_user, clinic_id, professional_sub)
    event = ShiftEvent(
        event_type=EventType.from_string(request.eventType),
        clinic_id=clinic_id,
        professional_sub=professional_sub,
        shift_details=ShiftDetails.from_dict(
            request.shiftDetails.model_dump() if request.shiftDetails else None
        ),
    )

    try:
        event_id = publish(event)
    except Exception as e:
        logger.error(f"Failed to publish {event.event_type.value}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to publish event",
        )
    return ShiftEventResponse(eventId=event_id, eventType=event.event_type.value)
