"""
Real-Time Dispatcher

Pushes JSON payloads to WebSocket connections through the API Gateway
Management API (PostToConnection).

- send(): exactly one connection. A GoneException is raised as
  StaleConnectionError so the caller can unregister the connection; any
  other error is logged with the connection id and payload type and
  propagated.
- fan_out(): many connections in parallel, one DeliveryResult per
  connection. A failure on one connection never suppresses delivery to the
  others.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from chat.errors import StaleConnectionError
from chat.types import DeliveryResult, DeliveryStatus
from config.settings import settings

logger = logging.getLogger(__name__)

GONE_ERROR_CODE = "GoneException"


def endpoint_from_request_context(request_context: dict) -> str:
    """Management API endpoint for the API/stage a WebSocket event came from."""
    domain = request_context.get("domainName", "")
    stage = request_context.get("stage", "")
    return f"https://{domain}/{stage}"


def encode_payload(payload: dict) -> bytes:
    return json.dumps(payload, default=str).encode("utf-8")


class Dispatcher:
    """Sends payloads to open WebSocket connections."""

    def __init__(self, endpoint: str, client=None, max_workers: Optional[int] = None):
        self.endpoint = endpoint
        self._client = client
        self.max_workers = max_workers or settings.DISPATCH_MAX_WORKERS

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "apigatewaymanagementapi",
                endpoint_url=self.endpoint,
                region_name=settings.AWS_REGION,
            )
        return self._client

    def send(self, connection_id: str, payload: dict) -> None:
        """
        Push one payload to one connection.

        Raises:
            StaleConnectionError: The connection is gone
            ClientError / BotoCoreError: Any other transport failure
        """
        try:
            self.client.post_to_connection(
                ConnectionId=connection_id,
                Data=encode_payload(payload),
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == GONE_ERROR_CODE:
                raise StaleConnectionError(connection_id) from e
            logger.error(
                f"PostToConnection failed: connection={connection_id} "
                f"type={payload.get('type')} error={e}"
            )
            raise
        except BotoCoreError as e:
            logger.error(
                f"PostToConnection failed: connection={connection_id} "
                f"type={payload.get('type')} error={e}"
            )
            raise

    def _deliver(self, connection_id: str, payload: dict) -> DeliveryResult:
        try:
            self.send(connection_id, payload)
            return DeliveryResult(connection_id, DeliveryStatus.DELIVERED)
        except StaleConnectionError:
            logger.info(f"Gone: {connection_id}")
            return DeliveryResult(connection_id, DeliveryStatus.STALE)
        except (ClientError, BotoCoreError) as e:
            return DeliveryResult(connection_id, DeliveryStatus.FAILED, error=str(e))
        except Exception as e:
            logger.error(f"Delivery to {connection_id} failed: {e}")
            return DeliveryResult(connection_id, DeliveryStatus.FAILED, error=str(e))

    def fan_out(self, connection_ids: Iterable[str], payload: dict) -> list[DeliveryResult]:
        """
        Push one payload to many connections concurrently.

        Args:
            connection_ids: Target connection ids (duplicates are collapsed)
            payload: JSON-serializable payload

        Returns:
            One DeliveryResult per distinct connection id, in input order
        """
        targets = list(dict.fromkeys(connection_ids))
        if not targets:
            return []
        if len(targets) == 1:
            return [self._deliver(targets[0], payload)]

        # boto3 client creation is not thread-safe; build it before the pool
        self.client
        with ThreadPoolExecutor(max_workers=min(len(targets), self.max_workers)) as executor:
            return list(executor.map(lambda cid: self._deliver(cid, payload), targets))
