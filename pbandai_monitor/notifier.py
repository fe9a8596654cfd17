"""Discord webhook notifier.

Posts plain-text product alerts to a Discord channel via webhook.
Delivery is best-effort: failures are logged and never raised, and a
missing webhook URL turns every notification into a logged no-op.
"""

import logging
from typing import List, Optional, Sequence

import requests

logger = logging.getLogger(__name__)

DEFAULT_ITEM_URL_TEMPLATE = "https://p-bandai.com/us/item/{id}"
DISCORD_CONTENT_LIMIT = 2000


def item_url(product_id: str, template: str = DEFAULT_ITEM_URL_TEMPLATE) -> str:
    return template.format(id=product_id)


def _links(product_ids: Sequence[str], template: str) -> str:
    return "\n".join(f"- {item_url(pid, template)}" for pid in product_ids)


def format_available_message(product_ids: Sequence[str], template: str = DEFAULT_ITEM_URL_TEMPLATE) -> str:
    """Message for products whose pages are now reachable."""
    return "\n".join([
        f"🚨 **{len(product_ids)} new product(s) now available on Premium Bandai USA!**",
        "",
        _links(product_ids, template),
        "",
        "Check immediately, could be a One Piece Card Game drop!",
    ])


def format_detected_message(product_ids: Sequence[str], template: str = DEFAULT_ITEM_URL_TEMPLATE) -> str:
    """Message for products listed in the sitemap but not reachable yet."""
    return "\n".join([
        f"👀 **{len(product_ids)} new product(s) detected on Premium Bandai USA, not available yet**",
        "",
        _links(product_ids, template),
        "",
        "Watching these and will alert again when they go live.",
    ])


class DiscordNotifier:
    def __init__(self, webhook_url: Optional[str], timeout: float = 10, session: Optional[requests.Session] = None):
        self.webhook_url = (webhook_url or "").strip()
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def notify(self, message: str) -> bool:
        """Send one message. Returns True when Discord accepted every part of it."""
        if not self.enabled:
            logger.info("Discord not configured (set PBANDAI_DISCORD_WEBHOOK); notification not sent")
            logger.debug(f"Unsent notification:\n{message}")
            return False

        ok = True
        for part in split_message(message):
            try:
                resp = self.session.post(self.webhook_url, json={"content": part}, timeout=self.timeout)
            except requests.RequestException as e:
                logger.error(f"Discord webhook request failed: {e}")
                return False

            if not 200 <= resp.status_code < 300:
                logger.error(f"Discord webhook failed: HTTP {resp.status_code}")
                ok = False

        if ok:
            logger.info("Discord notification sent")
        return ok


def split_message(message: str, limit: int = DISCORD_CONTENT_LIMIT) -> List[str]:
    """Split a message on line boundaries into parts Discord will accept."""
    if len(message) <= limit:
        return [message]

    parts: List[str] = []
    current = ""
    for line in message.split("\n"):
        while len(line) > limit:
            if current:
                parts.append(current)
                current = ""
            parts.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            parts.append(current)
            current = line
        else:
            current = candidate
    if current:
        parts.append(current)
    return parts
