"""
Pydantic models for the REST pull API

Field names follow the WebSocket payloads (camelCase) so clients can share
one parser for both transports.
"""

from pydantic import BaseModel, Field
from typing import List, Optional


class ConversationSummary(BaseModel):
    """One conversation as seen by the caller"""

    conversationId: str = Field(description="Symmetric conversation id")
    recipientName: str = Field(description="Display name of the other party")
    lastMessage: str = Field(description="Preview of the last message (max 100 chars)")
    lastMessageAt: str = Field(description="ISO-8601 time of the last message")
    unreadCount: int = Field(description="Unread messages for the caller")


class ConversationsResponse(BaseModel):
    conversations: List[ConversationSummary]


class HistoryItem(BaseModel):
    messageId: str
    timestamp: str
    senderKey: str
    senderName: str
    content: str
    messageType: str


class HistoryResponse(BaseModel):
    conversationId: str
    items: List[HistoryItem]
    nextKey: Optional[str] = Field(default=None, description="Opaque token for the next (older) page")


class ConversationRef(BaseModel):
    """Addresses a conversation by its two parties"""

    clinicId: str = Field(min_length=1)
    professionalSub: str = Field(min_length=1)


class AckResponse(BaseModel):
    conversationId: str
    action: str


class ShiftDetailsModel(BaseModel):
    role: Optional[str] = None
    date: Optional[str] = None
    rate: Optional[float] = None


class ShiftEventRequest(ConversationRef):
    """Request model for publishing a shift event"""

    eventType: str = Field(description="shift-applied | invite-accepted | shift-cancelled | shift-scheduled")
    shiftDetails: Optional[ShiftDetailsModel] = None


class ShiftEventResponse(BaseModel):
    eventId: str
    eventType: str
