"""
Keep-alive Worker

Pings the service's own /health URL so free-tier hosts (Render, Heroku) do not
idle the process out between webhooks. Enabled only when SELF_PING_URL is set.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from shiprelay.config import settings
from shiprelay.services.http_client import get_with_retry

logger = logging.getLogger(__name__)


async def run_keep_alive_worker() -> Dict[str, Any]:
    url = settings.SELF_PING_URL
    if not url:
        return {"success": True, "message": "SELF_PING_URL not set", "timestamp": datetime.now(timezone.utc).isoformat()}
    resp = await get_with_retry(url, timeout=10.0, max_retries=0)
    logger.debug("Keep-alive ping %s -> %s", url, resp.status_code)
    return {
        "success": resp.status_code < 400,
        "message": f"ping {resp.status_code}",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
