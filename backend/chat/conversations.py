"""
Conversation Aggregate Store

One item per (clinic, professional) pair in DentiPal-Conversations, keyed by
the symmetric conversation id. Holds the last-message preview and one unread
counter per side.

Counter updates are single UpdateItem calls, so concurrent sends from both
sides are each atomic: counts are never lost and never go negative. The
preview is last-write-wins.
"""

import logging
from typing import Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from chat.dynamo import get_table
from chat.keys import ParticipantKind, kind_of, now_ms
from chat.registry import query_all
from chat.types import PREVIEW_MAX_LEN, ConversationAggregate
from config.settings import settings

logger = logging.getLogger(__name__)

CLINIC_INDEX = "clinicKey-lastMessageAt"
PROF_INDEX = "profKey-lastMessageAt"

CLINIC_UNREAD = "clinicUnread"
PROF_UNREAD = "profUnread"


def unread_attribute(for_clinic: bool) -> str:
    return CLINIC_UNREAD if for_clinic else PROF_UNREAD


class ConversationStore:
    """DynamoDB-backed conversation aggregates."""

    def __init__(self, table=None):
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = get_table(settings.CONVERSATIONS_TABLE)
        return self._table

    def record_message(
        self,
        conversation_id: str,
        clinic_key: str,
        prof_key: str,
        preview: str,
        sent_by_clinic: bool,
        clinic_name: str = "",
        prof_name: str = "",
        at_ms: Optional[int] = None,
    ) -> None:
        """
        Apply a new message to the aggregate (upsert).

        - recipient's unread counter += 1 (starting from 0 if absent)
        - sender's unread counter = 0
        - preview (first 100 chars), timestamp and display names refreshed

        Args:
            conversation_id: Symmetric conversation id
            clinic_key: clinic#<id>
            prof_key: prof#<sub>
            preview: Message content (truncated here)
            sent_by_clinic: True when the clinic side sent the message
            clinic_name: Clinic display name (skipped when empty)
            prof_name: Professional display name (skipped when empty)
            at_ms: Message time in epoch ms (default: now)
        """
        set_clauses = [
            "clinicKey = :ck",
            "profKey = :pk",
            "lastMessageAt = :lma",
            "lastPreview = :lp",
            "#unread = if_not_exists(#unread, :zero) + :inc",
            "#otherUnread = :zero",
        ]
        values = {
            ":ck": clinic_key,
            ":pk": prof_key,
            ":lma": at_ms if at_ms is not None else now_ms(),
            ":lp": preview[:PREVIEW_MAX_LEN],
            ":zero": 0,
            ":inc": 1,
        }
        if clinic_name:
            set_clauses.append("clinicName = :cname")
            values[":cname"] = clinic_name
        if prof_name:
            set_clauses.append("profName = :pname")
            values[":pname"] = prof_name

        self.table.update_item(
            Key={"conversationId": conversation_id},
            UpdateExpression="SET " + ", ".join(set_clauses),
            ExpressionAttributeNames={
                # Recipient's counter goes up, sender's is cleared
                "#unread": unread_attribute(for_clinic=not sent_by_clinic),
                "#otherUnread": unread_attribute(for_clinic=sent_by_clinic),
            },
            ExpressionAttributeValues=values,
        )

    def mark_read(self, conversation_id: str, reader_is_clinic: bool) -> bool:
        """
        Zero the reader's own unread counter; the counterpart's is untouched.

        Returns:
            False if the conversation does not exist yet (nothing to mark)
        """
        try:
            self.table.update_item(
                Key={"conversationId": conversation_id},
                UpdateExpression="SET #unread = :zero",
                ConditionExpression="attribute_exists(conversationId)",
                ExpressionAttributeNames={"#unread": unread_attribute(reader_is_clinic)},
                ExpressionAttributeValues={":zero": 0},
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                logger.info(f"mark_read on missing conversation {conversation_id}")
                return False
            raise

    def get(self, conversation_id: str) -> Optional[ConversationAggregate]:
        response = self.table.get_item(Key={"conversationId": conversation_id})
        item = response.get("Item")
        return ConversationAggregate.from_item(item) if item else None

    def list_for(self, participant_key: str) -> list[ConversationAggregate]:
        """
        All conversations where the participant is one of the two parties,
        most recently active first.
        """
        if kind_of(participant_key) == ParticipantKind.CLINIC:
            index, attr = CLINIC_INDEX, "clinicKey"
        else:
            index, attr = PROF_INDEX, "profKey"

        items = query_all(
            self.table,
            IndexName=index,
            KeyConditionExpression=Key(attr).eq(participant_key),
            ScanIndexForward=False,  # newest first
        )
        return [ConversationAggregate.from_item(item) for item in items]
