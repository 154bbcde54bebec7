"""
Display-name resolution with a bounded per-process cache.

Professional names come from the Cognito user pool (AdminGetUser). Clinic
names come from the clinics table when configured, otherwise from the display
name cached on the clinic's most recent connection.

The cache lives only as long as the warm Lambda container and is never
authoritative: a miss just means a lookup. Fallback names produced on lookup
failure are returned but not cached, so a transient error does not pin a
placeholder name for the lifetime of the container.
"""

import logging
from collections import OrderedDict
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from chat.dynamo import get_table
from chat.keys import ParticipantKind, clinic_key, kind_of, prof_key, strip_prefix
from chat.registry import ConnectionRegistry
from config.settings import settings

logger = logging.getLogger(__name__)


class NameCache:
    """Size-bounded LRU mapping participant key -> display name."""

    def __init__(self, max_size: int = 512):
        self.max_size = max(1, max_size)
        self._items: "OrderedDict[str, str]" = OrderedDict()

    def get(self, key: str) -> Optional[str]:
        if key not in self._items:
            return None
        self._items.move_to_end(key)
        return self._items[key]

    def set(self, key: str, value: str) -> None:
        self._items[key] = value
        self._items.move_to_end(key)
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items


# Shared by every resolver in this process (warm container only)
_name_cache = NameCache(settings.NAME_CACHE_SIZE)


def sanitize_display_name(value) -> str:
    if not value:
        return ""
    return str(value).strip()


def display_from_claims(payload: dict) -> str:
    """Best display name from token claims: given_name, name, then email local part."""
    email = sanitize_display_name(payload.get("email"))
    return (
        sanitize_display_name(payload.get("given_name"))
        or sanitize_display_name(payload.get("name"))
        or (email.split("@")[0] if email else "")
    )


def _pick_attr(attributes: list[dict], name: str) -> str:
    for attr in attributes or []:
        if attr.get("Name") == name:
            return attr.get("Value") or ""
    return ""


def professional_fallback(sub: str) -> str:
    return f"User {str(sub)[:6]}"


class NameResolver:
    """Resolve participant keys to human-readable names."""

    def __init__(
        self,
        registry: Optional[ConnectionRegistry] = None,
        cognito_client=None,
        clinics_table=None,
        cache: Optional[NameCache] = None,
    ):
        self.registry = registry or ConnectionRegistry()
        self._cognito = cognito_client
        self._clinics_table = clinics_table
        self.cache = cache if cache is not None else _name_cache

    @property
    def cognito(self):
        if self._cognito is None:
            self._cognito = boto3.client("cognito-idp", region_name=settings.AWS_REGION)
        return self._cognito

    @property
    def clinics_table(self):
        if self._clinics_table is None and settings.CLINICS_TABLE:
            self._clinics_table = get_table(settings.CLINICS_TABLE)
        return self._clinics_table

    def name_for(self, participant_key: str) -> str:
        if kind_of(participant_key) == ParticipantKind.CLINIC:
            return self.clinic_name(strip_prefix(participant_key))
        return self.professional_name(strip_prefix(participant_key))

    def professional_name(self, sub: str) -> str:
        key = prof_key(sub)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if not settings.USER_POOL_ID and self._cognito is None:
            return professional_fallback(sub)

        try:
            response = self.cognito.admin_get_user(
                UserPoolId=settings.USER_POOL_ID,
                Username=sub,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Name lookup failed for {key}: {e}")
            return professional_fallback(sub)

        attributes = response.get("UserAttributes", [])
        given = _pick_attr(attributes, "given_name")
        family = _pick_attr(attributes, "family_name")
        email = _pick_attr(attributes, "email")
        display = (
            sanitize_display_name(given)
            or sanitize_display_name(_pick_attr(attributes, "name"))
            or sanitize_display_name(" ".join(p for p in (given, family) if p))
            or sanitize_display_name(email.split("@")[0] if email else "")
        )
        if not display:
            return professional_fallback(sub)

        self.cache.set(key, display)
        return display

    def clinic_name(self, clinic_id: str) -> str:
        key = clinic_key(clinic_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        display = ""
        try:
            table = self.clinics_table
            if table is not None:
                item = table.get_item(Key={"clinicId": str(clinic_id)}).get("Item") or {}
                display = sanitize_display_name(item.get("name") or item.get("clinicName"))
            if not display:
                display = self.registry.latest_display(key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Name lookup failed for {key}: {e}")
            return str(clinic_id)

        if not display:
            return str(clinic_id)

        self.cache.set(key, display)
        return display
