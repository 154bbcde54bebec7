"""
Message Log

Append-only store of chat messages in DentiPal-Messages, partitioned by
conversation id and sorted by message id. Message ids start with the epoch
millisecond, so descending sort-key order is newest first.

No ordering is guaranteed between concurrent writers beyond each record's
own timestamp; readers sort by message id.
"""

import base64
import json
import logging
from typing import Any, Optional, Union

from boto3.dynamodb.conditions import Key

from chat.dynamo import get_table
from chat.errors import ValidationError
from chat.types import HistoryPage, MessageRecord
from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def clamp_limit(limit: Any) -> int:
    """Page size from client input: default 50, clamped to [1, 200]."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE
    if value <= 0:
        return DEFAULT_PAGE_SIZE if value == 0 else 1
    return min(MAX_PAGE_SIZE, value)


def encode_cursor(last_evaluated_key: Optional[dict]) -> Optional[str]:
    """Opaque continuation token for a DynamoDB LastEvaluatedKey."""
    if not last_evaluated_key:
        return None
    raw = json.dumps(last_evaluated_key, sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(token: Union[str, dict, None]) -> Optional[dict]:
    """
    Inverse of encode_cursor.

    Raw key dicts (sent by older clients that echoed LastEvaluatedKey) are
    passed through unchanged.

    Raises:
        ValidationError: If the token cannot be decoded
    """
    if not token:
        return None
    if isinstance(token, dict):
        return token
    try:
        raw = base64.urlsafe_b64decode(str(token).encode("ascii"))
        key = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeError) as e:
        raise ValidationError("Invalid nextKey") from e
    if not isinstance(key, dict):
        raise ValidationError("Invalid nextKey")
    return key


class MessageLog:
    """DynamoDB-backed per-conversation message log."""

    def __init__(self, table=None):
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = get_table(settings.MESSAGES_TABLE)
        return self._table

    def append(self, record: MessageRecord) -> MessageRecord:
        """Write a message record. Records are never updated afterwards."""
        self.table.put_item(Item=record.to_item())
        return record

    def history(
        self,
        conversation_id: str,
        limit: Any = DEFAULT_PAGE_SIZE,
        next_key: Union[str, dict, None] = None,
    ) -> HistoryPage:
        """
        One page of messages, newest first.

        Args:
            conversation_id: Symmetric conversation id
            limit: Requested page size (clamped to [1, 200], default 50)
            next_key: Opaque token from a previous page

        Returns:
            HistoryPage with next_key=None on the last page
        """
        params: dict[str, Any] = {
            "KeyConditionExpression": Key("conversationId").eq(conversation_id),
            "ScanIndexForward": False,  # newest first
            "Limit": clamp_limit(limit),
        }
        start_key = decode_cursor(next_key)
        if start_key:
            params["ExclusiveStartKey"] = start_key

        response = self.table.query(**params)
        return HistoryPage(
            conversation_id=conversation_id,
            messages=[MessageRecord.from_item(item) for item in response.get("Items", [])],
            next_key=encode_cursor(response.get("LastEvaluatedKey")),
        )
