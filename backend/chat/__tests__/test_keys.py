"""
Unit tests for participant keys, conversation ids and message ids.

Run: python3 -m pytest chat/__tests__/test_keys.py -v
"""

import re

import pytest

from chat.keys import (
    ParticipantKind,
    clinic_key,
    conversation_id,
    conversation_id_for,
    kind_of,
    new_message_id,
    prof_key,
    strip_prefix,
)


class TestParticipantKeys:

    def test_clinic_and_prof_keys(self):
        assert clinic_key("C1") == "clinic#C1"
        assert prof_key("abc-123") == "prof#abc-123"

    def test_keys_strip_whitespace(self):
        assert clinic_key("  C1 ") == "clinic#C1"

    @pytest.mark.parametrize("builder", [clinic_key, prof_key])
    def test_empty_id_rejected(self, builder):
        with pytest.raises(ValueError):
            builder("   ")

    def test_kind_of(self):
        assert kind_of("clinic#C1") == ParticipantKind.CLINIC
        assert kind_of("prof#P1") == ParticipantKind.PROFESSIONAL
        with pytest.raises(ValueError):
            kind_of("admin#1")

    def test_strip_prefix(self):
        assert strip_prefix("clinic#C1") == "C1"
        assert strip_prefix("prof#P1") == "P1"


class TestConversationId:

    def test_symmetric(self):
        """Both parties compute the same id."""
        a, b = clinic_key("C1"), prof_key("P1")
        assert conversation_id(a, b) == conversation_id(b, a)

    def test_format_is_sorted_keys_joined(self):
        assert conversation_id_for("C1", "P1") == "clinic#C1|prof#P1"

    def test_different_pairs_differ(self):
        assert conversation_id_for("C1", "P1") != conversation_id_for("C1", "P2")
        assert conversation_id_for("C1", "P1") != conversation_id_for("C2", "P1")


class TestMessageId:

    def test_user_message_id_format(self):
        assert re.fullmatch(r"\d{13}-[0-9a-z]{6}", new_message_id())

    def test_system_message_id_format(self):
        assert re.fullmatch(r"\d{13}-system-[0-9a-z]{5}", new_message_id(system=True))

    def test_ids_are_unique(self):
        ids = {new_message_id() for _ in range(200)}
        assert len(ids) == 200
