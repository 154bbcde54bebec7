"""
Typed structures for the WebSocket worker protocol.

API Gateway WebSocket event (abridged):
{
    "requestContext": {
        "routeKey": "$default",
        "connectionId": "abc123=",
        "domainName": "xyz.execute-api.us-east-1.amazonaws.com",
        "stage": "prod"
    },
    "queryStringParameters": {"token": "...", "clinicId": "..."},   // $connect only
    "body": "{\"action\": \"sendMessage\", ...}"
}
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = "$default"


class WsAction(str, Enum):
    """Closed set of WebSocket actions; anything else is UNKNOWN."""
    CONNECT = "$connect"
    DISCONNECT = "$disconnect"
    SEND_MESSAGE = "sendMessage"
    GET_HISTORY = "getHistory"
    MARK_READ = "markRead"
    GET_CONVERSATIONS = "getConversations"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "WsAction":
        for action in cls:
            if action is not cls.UNKNOWN and action.value == value:
                return action
        return cls.UNKNOWN

    @classmethod
    def parse_body_action(cls, value) -> "WsAction":
        """Client-sent actions; lifecycle routes are never reachable from a frame body."""
        action = cls.parse(value)
        if action in (cls.CONNECT, cls.DISCONNECT):
            return cls.UNKNOWN
        return action


@dataclass
class WebSocketRequest:
    """One inbound WebSocket frame (or connect/disconnect lifecycle event)."""
    route_key: str
    connection_id: str
    domain_name: str = ""
    stage: str = ""
    body: dict[str, Any] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)

    @property
    def request_context(self) -> dict:
        return {"domainName": self.domain_name, "stage": self.stage}

    @property
    def action(self) -> WsAction:
        """
        Action for this frame: the route key, or the body's "action" field
        when the frame came through the $default route.
        """
        if self.route_key == DEFAULT_ROUTE:
            return WsAction.parse_body_action(self.body.get("action"))
        return WsAction.parse(self.route_key)

    @classmethod
    def from_event(cls, event: dict) -> "WebSocketRequest":
        ctx = event.get("requestContext") or {}
        raw_body = event.get("body")
        body: dict[str, Any] = {}
        if raw_body:
            try:
                parsed = json.loads(raw_body)
                if isinstance(parsed, dict):
                    body = parsed
            except (TypeError, ValueError) as e:
                logger.warning(f"Could not parse body: {e}")

        return cls(
            route_key=ctx.get("routeKey", DEFAULT_ROUTE),
            connection_id=ctx.get("connectionId", ""),
            domain_name=ctx.get("domainName", ""),
            stage=ctx.get("stage", ""),
            body=body,
            query=event.get("queryStringParameters") or {},
        )
