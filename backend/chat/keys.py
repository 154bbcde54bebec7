"""
Participant keys and identifiers.

Every record in the messaging tables is addressed by a participant key:
    clinic#<clinicId>   - a clinic
    prof#<userSub>      - a professional

Conversation ids are derived from the two keys so that both sides compute
the same id regardless of who started the conversation.
"""

import random
import string
import time
from enum import Enum

CLINIC_PREFIX = "clinic#"
PROF_PREFIX = "prof#"
CONVERSATION_SEPARATOR = "|"

_BASE36 = string.digits + string.ascii_lowercase


class ParticipantKind(str, Enum):
    """Which side of a conversation a participant key belongs to."""
    CLINIC = "clinic"
    PROFESSIONAL = "prof"


def clinic_key(clinic_id) -> str:
    """Build participant key for a clinic (e.g., clinic#42)."""
    value = str(clinic_id).strip()
    if not value:
        raise ValueError("clinic_id must not be empty")
    return f"{CLINIC_PREFIX}{value}"


def prof_key(professional_sub) -> str:
    """Build participant key for a professional (e.g., prof#abc-123)."""
    value = str(professional_sub).strip()
    if not value:
        raise ValueError("professional_sub must not be empty")
    return f"{PROF_PREFIX}{value}"


def kind_of(participant_key: str) -> ParticipantKind:
    """
    Classify a participant key.

    Raises:
        ValueError: If the key carries neither tag
    """
    if participant_key.startswith(CLINIC_PREFIX):
        return ParticipantKind.CLINIC
    if participant_key.startswith(PROF_PREFIX):
        return ParticipantKind.PROFESSIONAL
    raise ValueError(f"Invalid participant key: {participant_key!r}")


def strip_prefix(participant_key: str) -> str:
    """Return the raw clinic id / user sub from a participant key."""
    if kind_of(participant_key) == ParticipantKind.CLINIC:
        return participant_key[len(CLINIC_PREFIX):]
    return participant_key[len(PROF_PREFIX):]


def conversation_id(first_key: str, second_key: str) -> str:
    """
    Deterministic conversation id for two participant keys.

    Order independent: conversation_id(a, b) == conversation_id(b, a).
    """
    return CONVERSATION_SEPARATOR.join(sorted([first_key, second_key]))


def conversation_id_for(clinic_id, professional_sub) -> str:
    """Conversation id for a (clinicId, professionalSub) pair."""
    return conversation_id(clinic_key(clinic_id), prof_key(professional_sub))


def now_ms() -> int:
    return int(time.time() * 1000)


def _random_suffix(length: int) -> str:
    return "".join(random.choices(_BASE36, k=length))


def new_message_id(system: bool = False) -> str:
    """
    Time-ordered message id: <epoch-ms>-<random> (system: <epoch-ms>-system-<random>).

    The millisecond prefix keeps ids roughly chronological as a sort key,
    the random suffix makes collisions between concurrent senders unlikely.
    """
    if system:
        return f"{now_ms()}-system-{_random_suffix(5)}"
    return f"{now_ms()}-{_random_suffix(6)}"
