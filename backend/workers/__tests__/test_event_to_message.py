"""
Unit tests for the event-to-message bridge.

Run: python3 -m pytest workers/__tests__/test_event_to_message.py -v
"""

import pytest
from unittest.mock import MagicMock, patch

from chat.__tests__.fakes import make_service
from chat.errors import UnknownEventTypeError, ValidationError
from config.settings import settings
from workers.event_to_message import build_service, handler

CONVO = "clinic#C1|prof#P1"


def bridge_event(event_type: str = "shift-scheduled", **detail) -> dict:
    body = {
        "eventType": event_type,
        "clinicId": "C1",
        "professionalSub": "P1",
        "shiftDetails": {"role": "Hygienist", "date": "2025-01-10", "rate": 50},
    }
    body.update(detail)
    return {"source": "denti-pal.api", "detail-type": "ShiftEvent", "detail": body}


def invoke(service, event: dict) -> dict:
    return handler(event, None, _build_service=lambda: service)


class TestHandler:

    def test_shift_scheduled_creates_system_message(self):
        service = make_service()
        service.registry.register("clinic#C1", "c-conn", role="Clinic")
        service.registry.register("prof#P1", "p-conn", role="Professional")

        assert invoke(service, bridge_event()) == {"statusCode": 200}

        record = service.messages.records[0]
        assert record.type == "system"
        assert record.sender_key == "clinic#C1"
        assert record.content == "Shift scheduled: Hygienist on 2025-01-10 at $50/hr. Questions? Reply here!"
        assert "-system-" in record.message_id

        # Both parties see it
        assert service.dispatcher.sent_to("c-conn")[0]["messageType"] == "system"
        assert service.dispatcher.sent_to("p-conn")[0]["content"] == record.content

    def test_aggregate_updated_like_user_message(self):
        service = make_service()

        invoke(service, bridge_event("shift-applied"))

        convo = service.conversations.get(CONVO)
        assert convo.clinic_unread == 1  # professional is the sender
        assert convo.prof_unread == 0
        assert convo.last_preview.startswith("Shift applied: Hygienist")

    def test_shared_connection_gets_one_copy(self):
        service = make_service()
        service.registry.register("clinic#C1", "shared", role="Clinic")
        service.registry.register("prof#P1", "shared", role="Professional")

        invoke(service, bridge_event())

        assert len(service.dispatcher.sent_to("shared")) == 1

    def test_stale_connections_pruned(self):
        service = make_service(gone={"p-old"})
        service.registry.register("prof#P1", "p-old", role="Professional")

        invoke(service, bridge_event())

        assert service.registry.list_connections("prof#P1") == []

    def test_unknown_event_type_fails_invocation(self):
        service = make_service()

        with pytest.raises(UnknownEventTypeError):
            invoke(service, bridge_event("shift-exploded"))
        assert service.messages.records == []

    def test_missing_ids_fail_invocation(self):
        service = make_service()

        with pytest.raises(ValidationError):
            invoke(service, bridge_event(professionalSub=""))
        assert service.messages.records == []

    def test_storage_failure_is_reraised(self):
        service = make_service()
        service.messages.append = MagicMock(side_effect=RuntimeError("dynamo down"))

        with pytest.raises(RuntimeError):
            invoke(service, bridge_event())


class TestBuildService:

    def test_no_endpoint_means_no_dispatcher(self):
        with patch("workers.event_to_message.ChatService") as chat_service:
            build_service()
        assert chat_service.call_args.kwargs["dispatcher"] is None

    def test_endpoint_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "WS_ENDPOINT", "https://abc.execute-api.us-east-1.amazonaws.com/prod")

        with patch("workers.event_to_message.ChatService") as chat_service:
            build_service()
        dispatcher = chat_service.call_args.kwargs["dispatcher"]
        assert dispatcher.endpoint == "https://abc.execute-api.us-east-1.amazonaws.com/prod"
