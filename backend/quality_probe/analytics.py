"""
Probe analytics.

Posts probe lifecycle events (action + variation, e.g. testQuality/Attempt)
to an HTTP logging endpoint. Analytics is best effort: transport failures are
logged and never change the outcome of a probe.
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from config import ProbeSettings
from quality_probe.models import SessionDescriptor

logger = logging.getLogger(__name__)

COMPONENT_NAME = "network-quality-probe"

ACTION_TEST_QUALITY = "testQuality"
VARIATION_ATTEMPT = "Attempt"
VARIATION_SUCCESS = "Success"
VARIATION_FAILURE = "Failure"


class ProbeAnalytics:
    """Analytics client bound to one session descriptor."""

    def __init__(
        self,
        descriptor: SessionDescriptor,
        settings: ProbeSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.descriptor = descriptor
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return self.settings.analytics_configured()

    def build_event(self, action: str, variation: str) -> Dict[str, Any]:
        return {
            "action": action,
            "variation": variation,
            "sessionId": self.descriptor.session_id,
            "partnerId": self.descriptor.api_key,
            "clientVersion": self.settings.client_version,
            "name": COMPONENT_NAME,
            "componentId": COMPONENT_NAME,
            "clientSystemTime": int(time.time() * 1000),
        }

    async def log_event(self, action: str, variation: str) -> bool:
        """
        Record one event.

        Returns:
            True if the event was delivered, False if analytics is disabled or
            delivery failed
        """
        logger.debug("[QUALITY-PROBE-ANALYTICS] %s/%s for session %s", action, variation, self.descriptor.session_id)
        if not self.enabled:
            return False

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.analytics_timeout)

        try:
            response = await self._client.post(
                self.settings.analytics_url,
                json=self.build_event(action, variation),
            )
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.warning("[QUALITY-PROBE-ANALYTICS] Endpoint rejected %s/%s: HTTP %s", action, variation, e.response.status_code)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("[QUALITY-PROBE-ANALYTICS] Could not deliver %s/%s: %s", action, variation, e)
        return False

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
