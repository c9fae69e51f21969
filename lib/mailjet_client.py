import logging
from typing import Any, Dict, List, Optional

import httpx

from lib.config import SyncConfig
from lib.errors import NotificationError

logger = logging.getLogger(__name__)


class MailjetClient:
    """Sends template emails through the Mailjet Send API v3.1."""

    def __init__(self, config: SyncConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client

    async def send_template(self, emails: List[str], template_id: int, campaign: str) -> Dict[str, Any]:
        if not self.config.mailjet_api_key or not self.config.mailjet_secret_key:
            raise NotificationError("Mailjet credentials not configured.")

        payload = {
            "Globals": {
                "CustomCampaign": campaign,
                "DeduplicateCampaign": False,
                "TemplateID": template_id,
            },
            "Messages": [{"To": [{"Email": email}]} for email in emails],
        }
        auth = (self.config.mailjet_api_key, self.config.mailjet_secret_key)

        if self.client is not None:
            response = await self.client.post(self.config.mailjet_api_url, json=payload, auth=auth)
        else:
            async with httpx.AsyncClient(timeout=self.config.http_timeout) as client:
                response = await client.post(self.config.mailjet_api_url, json=payload, auth=auth)

        if response.status_code >= 400:
            raise NotificationError(f"Mailjet API error: {response.status_code} {response.text[:200]}")

        data = response.json()
        failed = [m for m in data.get("Messages", []) if m.get("Status") != "success"]
        if failed:
            logger.error(f"Mailjet send error: {failed}")
            raise NotificationError(f"Mailjet failed to send {len(failed)} of {len(emails)} emails")

        return data
