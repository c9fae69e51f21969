from typing import Optional

import httpx

from lib.config import SyncConfig
from lib.utils import retry_on_error


@retry_on_error()
async def fetch_access_token(
    refresh_token: str,
    config: SyncConfig,
    client: Optional[httpx.AsyncClient] = None
) -> str:
    """
    Exchanges the user's refresh token for a new access token.
    Google access tokens live ~1h, so this runs once per sync cycle.
    """
    if not all([config.google_client_id, config.google_client_secret, refresh_token]):
        raise ValueError("Missing Google OAuth credentials.")

    payload = {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }

    if client is not None:
        response = await client.post(config.google_token_uri, data=payload)
    else:
        async with httpx.AsyncClient(timeout=config.http_timeout) as own_client:
            response = await own_client.post(config.google_token_uri, data=payload)

    response.raise_for_status()
    return response.json()["access_token"]
