"""
Connection Registry

Maps a participant key (clinic#<id> / prof#<sub>) to its open WebSocket
connections. One participant may hold many connections (devices, tabs).

Table layout (DentiPal-Connections):
- PK userKey, SK connectionId
- GSI connectionId-index (PK connectionId, SK userKey) for reverse lookup
  on disconnect, since the connection id alone does not address a row
- ttl attribute for passive cleanup when disconnect events are missed
"""

import logging
import time
from typing import Optional

from boto3.dynamodb.conditions import Key

from chat.dynamo import get_table
from chat.keys import now_ms
from chat.types import ConnectionRecord
from config.settings import settings

logger = logging.getLogger(__name__)

CONNECTION_ID_INDEX = "connectionId-index"


def query_all(table, **kwargs) -> list[dict]:
    """Run a DynamoDB query and follow LastEvaluatedKey until exhausted."""
    items: list[dict] = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class ConnectionRegistry:
    """DynamoDB-backed registry of live WebSocket connections."""

    def __init__(self, table=None, ttl_seconds: Optional[int] = None):
        self._table = table
        self.ttl_seconds = ttl_seconds or settings.CONNECTION_TTL_SECONDS

    @property
    def table(self):
        if self._table is None:
            self._table = get_table(settings.CONNECTIONS_TABLE)
        return self._table

    def register(
        self,
        participant_key: str,
        connection_id: str,
        role: str,
        display_name: str = "",
        subject_id: str = "",
    ) -> ConnectionRecord:
        """
        Upsert a connection row (idempotent).

        Args:
            participant_key: clinic#<id> or prof#<sub>
            connection_id: API Gateway connection id
            role: "Clinic" or "Professional"
            display_name: Cached display name of the caller
            subject_id: Cognito sub of the caller

        Returns:
            The stored ConnectionRecord
        """
        record = ConnectionRecord(
            participant_key=participant_key,
            connection_id=connection_id,
            user_type=role,
            display=display_name or "",
            sub=subject_id or "",
            connected_at=now_ms(),
            ttl=int(time.time()) + self.ttl_seconds,
        )
        self.table.put_item(Item=record.to_item())
        return record

    def get_by_connection(self, connection_id: str) -> list[ConnectionRecord]:
        """All registry rows for a connection id (normally zero or one)."""
        items = query_all(
            self.table,
            IndexName=CONNECTION_ID_INDEX,
            KeyConditionExpression=Key("connectionId").eq(connection_id),
        )
        return [ConnectionRecord.from_item(item) for item in items]

    def unregister(self, connection_id: str) -> int:
        """
        Delete every row owned by a connection id.

        A missing row is a no-op: disconnect can race with stale-connection
        cleanup from a concurrent send.

        Returns:
            Number of rows deleted
        """
        records = self.get_by_connection(connection_id)
        for record in records:
            self.remove(record.participant_key, connection_id)
        return len(records)

    def remove(self, participant_key: str, connection_id: str) -> None:
        """Delete a single (participant, connection) row. Deleting an absent row is a no-op."""
        self.table.delete_item(
            Key={"userKey": participant_key, "connectionId": connection_id}
        )

    def list_records(self, participant_key: str) -> list[ConnectionRecord]:
        items = query_all(
            self.table,
            KeyConditionExpression=Key("userKey").eq(participant_key),
        )
        return [ConnectionRecord.from_item(item) for item in items]

    def list_connections(self, participant_key: str) -> list[str]:
        """Connection ids for a participant; empty list means offline."""
        return [record.connection_id for record in self.list_records(participant_key)]

    def latest_display(self, participant_key: str) -> str:
        """Display name cached on the most recently opened connection, or ""."""
        records = self.list_records(participant_key)
        if not records:
            return ""
        best = max(records, key=lambda r: r.connected_at)
        return (best.display or "").strip()
