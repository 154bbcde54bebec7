"""
WebSocket Session Handler Lambda

Invoked by the API Gateway WebSocket API for every lifecycle event and frame.

Routes / actions (body "action" selects the handler on the $default route):
    $connect          ?token=<access token>[&clinicId=<id>]
    $disconnect
    sendMessage       {clinicId, professionalSub, content, messageType?}
    getHistory        {clinicId, professionalSub, limit?, nextKey?}
    markRead          {clinicId, professionalSub}
    getConversations  {}

Every action after $connect takes the caller's identity from the registered
connection record. A token in the body is only a cross-check and can never
change who the connection belongs to.

Response frames go to the caller's own connection:
    {"type": "ack" | "history" | "conversationsResponse" | "error", ...}

Log Format:
All logs use prefix [WebSocketHandler:conn=X:action=Y] for CloudWatch filtering.
"""

import logging
from typing import Callable

from auth.claims import (
    UserClaims,
    authorize_party,
    claims_from_connection,
    claims_from_token_payload,
    cross_check,
)
from auth.utils import decode_access_token
from chat.dispatcher import Dispatcher, endpoint_from_request_context
from chat.errors import (
    AuthenticationError,
    AuthorizationError,
    ChatError,
    StaleConnectionError,
    ValidationError,
)
from chat.service import ChatService, require_parties, validate_content
from chat.types import (
    MessageType,
    ack_payload,
    conversations_payload,
    error_payload,
    history_payload,
)
from utils.worker_logging import SessionLogContext
from workers.types import WebSocketRequest, WsAction

logger = logging.getLogger()
logger.setLevel(logging.INFO)

UNKNOWN_ACTION_MESSAGE = (
    "Unknown or missing action. Expected one of: "
    "sendMessage, getHistory, markRead, getConversations."
)

# Error frame text when an action fails for a non-client reason
FAILURE_MESSAGES = {
    WsAction.SEND_MESSAGE: "Failed to send message",
    WsAction.GET_HISTORY: "Failed to fetch history",
    WsAction.MARK_READ: "Failed to mark messages as read",
    WsAction.GET_CONVERSATIONS: "Failed to fetch conversations",
}


def response(status_code: int, body: str) -> dict:
    return {"statusCode": status_code, "body": body}


def build_service(request: WebSocketRequest) -> ChatService:
    """Service wired to the management endpoint of the API the request came from."""
    endpoint = endpoint_from_request_context(request.request_context)
    return ChatService(dispatcher=Dispatcher(endpoint))


# =============================================================================
# Helpers
# =============================================================================

def reply(service: ChatService, request: WebSocketRequest, payload: dict) -> None:
    """
    Send a frame to the caller's own connection.

    A caller that disconnected mid-request is not an error; other transport
    failures propagate.
    """
    try:
        service.dispatcher.send(request.connection_id, payload)
    except StaleConnectionError:
        logger.info(f"Caller connection gone before reply: {request.connection_id}")


def safe_reply(service: ChatService, request: WebSocketRequest, payload: dict, log: SessionLogContext) -> None:
    """reply() that never raises; used on error paths."""
    try:
        reply(service, request, payload)
    except Exception as e:
        log.log_error(f"Failed to send {payload.get('type')} frame: {e}")


def resolve_caller(request: WebSocketRequest, service: ChatService) -> UserClaims:
    """
    Identity of the caller from its registered connection.

    Raises:
        AuthenticationError: Connection is not registered, or clinic without clinicId
        AuthorizationError: Body token contradicts the registered identity
    """
    records = service.registry.get_by_connection(request.connection_id)
    if not records:
        raise AuthenticationError("Missing Authorization")
    claims = claims_from_connection(records[0])

    body_token = request.body.get("token")
    if body_token:
        try:
            token_claims = claims_from_token_payload(decode_access_token(body_token))
        except AuthenticationError as e:
            raise AuthorizationError("Invalid Access Token in body") from e
        body_clinic_id = request.body.get("clinicId") if claims.is_clinic else None
        claims = cross_check(claims, token_claims, body_clinic_id=body_clinic_id)

    if claims.is_clinic and not claims.clinic_id:
        raise AuthenticationError("Clinic user requires clinicId")
    return claims


def connect_claims(request: WebSocketRequest) -> UserClaims:
    """
    Identity for $connect from the query-string token.

    clinicId comes from the token (custom:clinicId) or, as a fallback, the
    clinicId query parameter.

    Raises:
        AuthenticationError: Missing/invalid token, or clinic user without clinicId
    """
    token = (request.query.get("token") or "").strip()
    if not token:
        raise AuthenticationError("Missing token")

    claims = claims_from_token_payload(decode_access_token(token))
    if not claims.clinic_id:
        fallback = (request.query.get("clinicId") or "").strip()
        claims.clinic_id = fallback or None

    if claims.is_clinic and not claims.clinic_id:
        raise AuthenticationError("Clinic user requires clinicId")
    return claims


# =============================================================================
# Route Handlers
# =============================================================================

def on_connect(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    """Authenticate the connection and register it; reject without creating a row on failure."""
    try:
        claims = connect_claims(request)
    except ChatError as e:
        log.log_warning(f"Connection rejected: {e.message}")
        return response(401, "Unauthorized")

    service.registry.register(
        claims.participant_key,
        request.connection_id,
        role=claims.user_type.value,
        display_name=claims.display_name,
        subject_id=claims.sub,
    )
    log.log_info(f"Registered {claims.participant_key}")
    return response(200, "Connected")


def on_disconnect(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    """Remove every registry row of this connection. Always succeeds."""
    try:
        removed = service.registry.unregister(request.connection_id)
        log.log_info(f"Removed {removed} connection record(s)")
    except Exception as e:
        log.log_error(f"Failed to unregister connection: {e}")
    return response(200, "Disconnected")


def on_send_message(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    claims = resolve_caller(request, service)
    body = request.body

    clinic_id, professional_sub = require_parties(body.get("clinicId"), body.get("professionalSub"))
    content = validate_content(body.get("content"))
    message_type = body.get("messageType") or MessageType.TEXT
    if not isinstance(message_type, str) or message_type == MessageType.SYSTEM:
        raise ValidationError("Invalid messageType")

    authorize_party(claims, clinic_id, professional_sub)

    result = service.send_message(
        clinic_id,
        professional_sub,
        sender_key=claims.participant_key,
        content=content,
        message_type=message_type,
        sender_display=claims.name,
    )
    if result.stale_connections:
        log.log_info(f"Pruned {len(result.stale_connections)} stale recipient connection(s)")

    reply(service, request, ack_payload(
        result.record.conversation_id,
        message_id=result.record.message_id,
        timestamp=result.record.timestamp,
    ))
    log.log_info(f"Message {result.record.message_id} stored in {result.record.conversation_id}")
    return response(200, "Message sent")


def on_get_history(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    resolve_caller(request, service)
    body = request.body
    clinic_id, professional_sub = require_parties(body.get("clinicId"), body.get("professionalSub"))

    page = service.history(
        clinic_id,
        professional_sub,
        limit=body.get("limit"),
        next_key=body.get("nextKey"),
    )
    reply(service, request, history_payload(page["conversationId"], page["items"], page["nextKey"]))
    return response(200, "OK")


def on_mark_read(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    claims = resolve_caller(request, service)
    body = request.body
    clinic_id, professional_sub = require_parties(body.get("clinicId"), body.get("professionalSub"))
    authorize_party(claims, clinic_id, professional_sub)

    convo_id = service.mark_read(clinic_id, professional_sub, reader_is_clinic=claims.is_clinic)
    reply(service, request, ack_payload(convo_id, action=WsAction.MARK_READ.value))
    return response(200, "Messages marked as read")


def on_get_conversations(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    claims = resolve_caller(request, service)
    conversations = service.list_conversations(claims.participant_key)
    reply(service, request, conversations_payload(conversations))
    return response(200, "OK")


def on_unknown(request: WebSocketRequest, service: ChatService, log: SessionLogContext) -> dict:
    log.log_warning(f"Unknown action on route {request.route_key}")
    safe_reply(service, request, error_payload(UNKNOWN_ACTION_MESSAGE), log)
    return response(200, "Unknown action")


ACTION_HANDLERS: dict[WsAction, Callable[[WebSocketRequest, ChatService, SessionLogContext], dict]] = {
    WsAction.CONNECT: on_connect,
    WsAction.DISCONNECT: on_disconnect,
    WsAction.SEND_MESSAGE: on_send_message,
    WsAction.GET_HISTORY: on_get_history,
    WsAction.MARK_READ: on_mark_read,
    WsAction.GET_CONVERSATIONS: on_get_conversations,
    WsAction.UNKNOWN: on_unknown,
}


# =============================================================================
# Lambda Handler
# =============================================================================

def handler(event: dict, context, _build_service=build_service) -> dict:
    """
    Lambda handler for the WebSocket API.

    Args:
        event: API Gateway WebSocket event
        context: Lambda context (unused)
        _build_service: ChatService factory (for testing)

    Returns:
        {"statusCode": int, "body": str}
    """
    request = WebSocketRequest.from_event(event)
    action = request.action
    log = SessionLogContext(request.connection_id, action.value)
    service = _build_service(request)

    try:
        return ACTION_HANDLERS[action](request, service, log)

    except ChatError as e:
        # Client error: tell the caller, nothing was written
        log.log_warning(f"Rejected: {e.message}")
        safe_reply(service, request, error_payload(e.message), log)
        return response(e.status_code, e.message)

    except Exception as e:
        log.log_exception(f"Handler error: {e}")
        safe_reply(service, request, error_payload(FAILURE_MESSAGES.get(action, "Internal error")), log)
        return response(500, "Error")
