import logging
from typing import Optional
import httpx

logger = logging.getLogger(__name__)


class SlackAlerter:
    """Posts operator alerts to a Slack incoming webhook.

    Alerting is best effort: a failed post is logged and never raised, so an
    outage at Slack cannot break a refill or a reconciliation cycle.
    """

    def __init__(self, webhook_url: str = "", timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, message: str) -> bool:
        if not self.enabled:
            logger.debug("Slack webhook URL not configured, skipping alert")
            return False
        try:
            resp = await self.client.post(self.webhook_url, json={"text": message})
        except httpx.HTTPError as e:
            logger.error(f"Unable to send Slack alert: {e}")
            return False
        if resp.status_code != 200:
            logger.error(f"Slack alert rejected with {resp.status_code}: {resp.text}")
            return False
        return True

    async def close(self) -> None:
        await self.client.aclose()
