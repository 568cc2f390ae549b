"""
Approval notifications: outbound calls to the external notification function.

Each workflow transition posts ``{"type": ..., "documentApprovalId": ...}``.
Delivery is best effort: network errors and 5xx responses are retried with
exponential back-off, and a notification that still fails is logged and
dropped. It never fails the approval action that triggered it.
"""

import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from docapproval.config import settings

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

APPROVAL_REQUEST = "approval_request"
APPROVAL_COMPLETED = "approval_completed"
APPROVAL_REJECTED = "approval_rejected"
APPROVAL_OVERDUE = "approval_overdue"

NOTIFICATION_TYPES = {
    APPROVAL_REQUEST,
    APPROVAL_COMPLETED,
    APPROVAL_REJECTED,
    APPROVAL_OVERDUE,
}


class _NotificationRetryableError(Exception):
    """Raised for 5xx or network errors that warrant a retry."""


class ApprovalNotifier:
    """Posts approval events to the configured notification function."""

    def __init__(
        self,
        function_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 3,
        retry_wait=None,
    ):
        self.function_url = function_url
        self.api_key = api_key
        self._client = client
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.NOTIFICATION_TIMEOUT_SECONDS, connect=5.0),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _post_once(self, payload: dict, headers: dict) -> bool:
        try:
            response = await self._get_client().post(
                self.function_url, json=payload, headers=headers
            )
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            logger.warning(
                "approval_notification_network_error_retrying",
                error=str(exc),
                type=payload["type"],
            )
            raise _NotificationRetryableError(str(exc)) from exc

        if response.status_code >= 500:
            logger.warning(
                "approval_notification_5xx_retrying",
                status_code=response.status_code,
                type=payload["type"],
            )
            raise _NotificationRetryableError(f"notification function returned {response.status_code}")

        if response.status_code >= 400:
            # 4xx: the function rejected the payload, retrying will not help
            logger.error(
                "approval_notification_rejected",
                status_code=response.status_code,
                response=response.text[:500],
                type=payload["type"],
            )
            return False
        return True

    async def notify(self, notification_type: str, document_approval_id: str) -> bool:
        """
        Send one notification. Returns True when the function accepted it.

        Never raises: failures are logged and reported as False.
        """
        if notification_type not in NOTIFICATION_TYPES:
            logger.warning("approval_notification_unknown_type", type=notification_type)
            return False

        if not self.function_url:
            logger.info(
                "approval_notification_skipped",
                reason="NOTIFICATION_FUNCTION_URL not configured",
                type=notification_type,
                document_approval_id=str(document_approval_id),
            )
            return False

        payload = {
            "type": notification_type,
            "documentApprovalId": str(document_approval_id),
        }
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["authorization"] = f"Bearer {self.api_key}"

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_NotificationRetryableError),
                stop=stop_after_attempt(self.max_attempts),
                wait=self.retry_wait,
                before_sleep=before_sleep_log(_std_logger, logging.WARNING),
                reraise=False,
            ):
                with attempt:
                    delivered = await self._post_once(payload, headers)
        except RetryError as exc:
            logger.error(
                "approval_notification_failed",
                error=str(exc.last_attempt.exception()),
                attempts=self.max_attempts,
                **payload,
            )
            return False
        except Exception as exc:
            logger.error("approval_notification_error", error=str(exc), **payload)
            return False

        logger.info("approval_notification_sent", success=delivered, **payload)
        return delivered


_notifier: Optional[ApprovalNotifier] = None


def get_notifier() -> ApprovalNotifier:
    """Process-wide notifier reusing one HTTP connection pool."""
    global _notifier
    if _notifier is None:
        _notifier = ApprovalNotifier(
            function_url=settings.NOTIFICATION_FUNCTION_URL,
            api_key=settings.NOTIFICATION_FUNCTION_KEY,
        )
    return _notifier
