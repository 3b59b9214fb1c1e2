"""Webhook notification adapter."""

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from repo_refresher.config import WebhookSettings
from repo_refresher.core import (
    DispatchError,
    DispatchResult,
    NotificationEnvelope,
    Notifier,
    SigningMaterial,
)

logger = logging.getLogger(__name__)


def sign_body(token: str, timestamp: str, body: str) -> str:
    """HMAC-SHA256 signature over ``"{timestamp}.{body}"``."""
    digest = hmac.new(
        token.encode("utf-8"),
        f"{timestamp}.{body}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"sha256={digest}"


class WebhookDispatcher(Notifier):
    """Deliver record notifications to every configured webhook concurrently."""

    def __init__(self, settings: WebhookSettings) -> None:
        """Initialize dispatcher.

        Args:
            settings: Destinations, shared token and per-destination timeout.
                With no destinations, dispatching is a no-op.
        """
        self.settings = settings

    async def dispatch(
        self, envelope: NotificationEnvelope, timestamp: Optional[str] = None
    ) -> list[DispatchResult]:
        """Send ``envelope`` to all destinations.

        Returns:
            One DispatchResult per destination, in configuration order.
        """
        if not self.settings.enabled:
            return []

        signing = SigningMaterial(
            token=self.settings.token,
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
        )
        body = json.dumps(envelope.to_payload(), ensure_ascii=False, default=str)
        headers = self._get_headers(body, signing)
        full_name = envelope.record.full_name

        async with httpx.AsyncClient(timeout=self.settings.timeout_seconds) as client:
            gathered = await asyncio.gather(
                *(self._deliver(client, url, body, headers) for url in self.settings.urls),
                return_exceptions=True,
            )
        results = [
            r if isinstance(r, DispatchResult) else DispatchResult(destination=url, success=False, error=repr(r))
            for url, r in zip(self.settings.urls, gathered)
        ]

        successful = [r for r in results if r.success]
        if successful:
            logger.debug(
                "webhook delivered to %d/%d destinations",
                len(successful),
                len(results),
                extra={"full_name": full_name},
            )
        else:
            logger.error(
                "webhook delivery failed for all destinations: %s",
                [{"destination": r.destination, "error": r.error} for r in results],
                extra={"full_name": full_name},
            )
        return results

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: str,
        headers: dict[str, str],
    ) -> DispatchResult:
        """Single delivery attempt, bounded by the per-destination timeout."""
        try:
            response = await asyncio.wait_for(
                self._post(client, url, body, headers),
                timeout=self.settings.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = DispatchError(url, f"timed out after {self.settings.timeout_seconds}s")
        except DispatchError as e:
            error = e
        except httpx.HTTPError as e:
            error = DispatchError(url, f"{type(e).__name__}: {e}")
        except Exception as e:
            # e.g. httpx.InvalidURL, which is not an HTTPError
            error = DispatchError(url, f"{type(e).__name__}: {e}")
        else:
            return DispatchResult(destination=url, success=True, status_code=response.status_code)

        logger.warning("webhook delivery failed: %s", error.reason, extra={"destination": url})
        return DispatchResult(
            destination=url,
            success=False,
            error=error.reason,
            status_code=error.status_code,
        )

    async def _post(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: str,
        headers: dict[str, str],
    ) -> httpx.Response:
        response = await client.post(url, content=body, headers=headers)
        if not 200 <= response.status_code < 300:
            raise DispatchError(url, f"HTTP {response.status_code}", status_code=response.status_code)
        return response

    def _get_headers(self, body: str, signing: SigningMaterial) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Timestamp": signing.timestamp,
        }
        if signing.token:
            headers["X-Webhook-Token"] = signing.token
            headers["X-Webhook-Signature"] = sign_body(signing.token, signing.timestamp, body)
        return headers
