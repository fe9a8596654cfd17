"""
1.0 Watchlist Module
Re-checks products that were detected in the sitemap but were not live yet.

Every poll cycle, before the sitemap is consulted, each watched product is
probed again. Products that respond are announced in one batched message
and retired for good; the rest stay on the watchlist in their original
order.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from pbandai_monitor.notifier import DEFAULT_ITEM_URL_TEMPLATE, format_available_message
from pbandai_monitor.state_store import MonitorState, WatchItem

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    resolved: List[WatchItem] = field(default_factory=list)
    pending: List[WatchItem] = field(default_factory=list)


def partition_watchlist(watch_list: Sequence[WatchItem], live_flags: Sequence[bool]) -> ReconcileResult:
    """2.0 Split watched items into resolved and pending, keeping relative order."""
    result = ReconcileResult()
    for item, live in zip(watch_list, live_flags):
        if live:
            result.resolved.append(item)
        else:
            result.pending.append(item)
    return result


def _age(first_seen: str) -> Optional[str]:
    try:
        seen = datetime.fromisoformat(first_seen)
    except (TypeError, ValueError):
        return None
    if seen.tzinfo is None:
        seen = seen.replace(tzinfo=timezone.utc)
    minutes = int((datetime.now(timezone.utc) - seen).total_seconds() // 60)
    return f"{minutes}m"


def reconcile_watchlist(
    state: MonitorState,
    prober,
    notifier,
    item_url_template: str = DEFAULT_ITEM_URL_TEMPLATE,
) -> ReconcileResult:
    """
    3.0 Re-probe every watched product and retire the ones now live.

    Args:
        state: Monitor state; its watch_list is replaced with the pending items
        prober: Object with check_many(urls) -> List[bool]
        notifier: Object with notify(message)
        item_url_template: Canonical product URL template used in the message

    Returns:
        ReconcileResult with the resolved and still pending items
    """
    if not state.watch_list:
        return ReconcileResult()

    watch_list = list(state.watch_list)
    live_flags = prober.check_many([item.probe_url for item in watch_list])
    result = partition_watchlist(watch_list, live_flags)

    state.watch_list = result.pending

    if result.resolved:
        logger.info(f"{len(result.resolved)} watched product(s) now live:")
        for item in result.resolved:
            age = _age(item.first_seen)
            logger.info(f"  -> {item.id} (watched for {age or 'unknown time'})")
        notifier.notify(format_available_message([item.id for item in result.resolved], item_url_template))
    else:
        logger.debug(f"{len(result.pending)} watched product(s) still not live")

    return result
