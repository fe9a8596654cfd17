"""
1.0 Monitor Module
Runs the poll cycle and the polling loop.

Cycle order (strict):
1. Reconcile - re-probe watched products, announce the ones now live
2. Fetch     - conditional GET of the sitemap (304 = unchanged)
3. Diff      - new ids and removed ids against the known ids
4. Classify  - probe new ids: live now vs staged on the watchlist
5. Notify    - one "now available" and one "detected" message per cycle
6. Commit    - known ids and ETag replaced, state persisted in one write

A failed cycle persists nothing. The loop counts consecutive failures and
takes one extended pause each time the count is at or above the threshold.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pbandai_monitor.notifier import (
    DEFAULT_ITEM_URL_TEMPLATE,
    DiscordNotifier,
    format_available_message,
    format_detected_message,
    item_url,
)
from pbandai_monitor.sitemap_fetcher import SitemapFetcher
from pbandai_monitor.state_store import MonitorState, StateStore, WatchItem, utc_now_iso
from pbandai_monitor.url_status_checker import LivenessProber
from pbandai_monitor.watchlist import reconcile_watchlist

logger = logging.getLogger(__name__)

STATUS_UNCHANGED = "unchanged"
STATUS_BASELINE = "baseline"
STATUS_CHANGED = "changed"


@dataclass
class CycleResult:
    """Outcome of one successful poll cycle."""
    status: str
    state: MonitorState
    new_ids: List[str] = field(default_factory=list)
    removed_ids: List[str] = field(default_factory=list)
    live_now: List[str] = field(default_factory=list)
    staged: List[str] = field(default_factory=list)
    resolved: List[str] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return len(self.new_ids)


@dataclass
class PollOutcome:
    """What the loop carries from one cycle to the next."""
    consecutive_errors: int
    result: Optional[CycleResult] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def new_count(self) -> int:
        return self.result.new_count if self.result else 0


def _copy_state(state: MonitorState) -> MonitorState:
    return MonitorState(
        etag=state.etag,
        known_ids=set(state.known_ids),
        watch_list=[WatchItem(item.id, item.probe_url, item.first_seen) for item in state.watch_list],
    )


def run_cycle(
    state: MonitorState,
    fetcher,
    prober,
    notifier,
    item_url_template: str = DEFAULT_ITEM_URL_TEMPLATE,
    now: Callable[[], str] = utc_now_iso,
) -> CycleResult:
    """
    2.0 Execute one poll cycle against a loaded state.

    The given state is not modified; the state to persist is returned in
    CycleResult.state. Any exception from the fetcher or prober propagates
    so the caller can skip persisting.
    """
    working = _copy_state(state)

    # 2.1 Reconcile
    reconciled = reconcile_watchlist(working, prober, notifier, item_url_template)
    resolved = [item.id for item in reconciled.resolved]

    # 2.2 Fetch
    fetched = fetcher.fetch(working.etag)

    if not fetched.changed:
        logger.info("No changes (304)")
        return CycleResult(status=STATUS_UNCHANGED, state=working, resolved=resolved)

    fetched_ids = set()
    probe_urls: Dict[str, Optional[str]] = {}
    ordered_ids: List[str] = []
    for product in fetched.products:
        if product.id not in fetched_ids:
            fetched_ids.add(product.id)
            ordered_ids.append(product.id)
        if not probe_urls.get(product.id):
            probe_urls[product.id] = product.probe_url

    logger.info(f"Sitemap updated! {len(fetched_ids)} products ({len(fetched.products)} entries)")

    if not working.known_ids and not working.etag:
        logger.info(f"First run - saving {len(fetched_ids)} products as baseline")
        working.known_ids = fetched_ids
        working.etag = fetched.etag
        return CycleResult(status=STATUS_BASELINE, state=working, resolved=resolved)

    # 2.3 Diff
    new_ids = [pid for pid in ordered_ids if pid not in working.known_ids]
    removed_ids = sorted(working.known_ids - fetched_ids)

    if removed_ids:
        logger.info(f"{len(removed_ids)} product(s) removed: {', '.join(removed_ids)}")
    if not new_ids and not removed_ids:
        logger.info("Sitemap changed (metadata) but no new/removed products")

    # 2.4 Classify
    live_now: List[str] = []
    staged: List[str] = []
    if new_ids:
        logger.info(f"{len(new_ids)} NEW PRODUCT(S):")
        for pid in new_ids:
            logger.info(f"  -> {item_url(pid, item_url_template)}")

        live_flags = prober.check_many([probe_urls.get(pid) for pid in new_ids])
        watched = working.watched_ids()
        first_seen = now()
        for pid, live in zip(new_ids, live_flags):
            if live:
                live_now.append(pid)
                continue
            if pid in watched:
                logger.debug(f"{pid} is already on the watchlist")
                continue
            staged.append(pid)
            working.watch_list.append(WatchItem(id=pid, probe_url=probe_urls.get(pid), first_seen=first_seen))
            watched.add(pid)

        logger.info(f"  {len(live_now)} live now, {len(staged)} staged on the watchlist")

    # 2.5 Notify
    if live_now:
        notifier.notify(format_available_message(live_now, item_url_template))
    if staged:
        notifier.notify(format_detected_message(staged, item_url_template))

    # 2.6 Commit
    working.known_ids = fetched_ids
    working.etag = fetched.etag
    return CycleResult(
        status=STATUS_CHANGED,
        state=working,
        new_ids=new_ids,
        removed_ids=removed_ids,
        live_now=live_now,
        staged=staged,
        resolved=resolved,
    )


class PollLoop:
    """
    3.0 PollLoop Class
    Runs cycles one at a time and owns the failure backoff.
    """

    def __init__(
        self,
        store: StateStore,
        fetcher,
        prober,
        notifier,
        config: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        config = config or {}
        self.store = store
        self.fetcher = fetcher
        self.prober = prober
        self.notifier = notifier
        self.item_url_template = config.get("item_url_template", DEFAULT_ITEM_URL_TEMPLATE)
        self.poll_interval = config.get("poll_interval_seconds", 30)
        self.error_threshold = config.get("error_threshold", 5)
        self.backoff_seconds = config.get("backoff_seconds", 60)
        self.sleep = sleep

    def poll(self, consecutive_errors: int = 0) -> PollOutcome:
        """
        3.1 Load state, run one cycle, persist on success.

        Args:
            consecutive_errors: Failed cycles in a row before this one

        Returns:
            PollOutcome with the updated consecutive error count
        """
        state = self.store.load()
        try:
            result = run_cycle(state, self.fetcher, self.prober, self.notifier, self.item_url_template)
            self.store.save(result.state)
        except Exception as e:
            consecutive_errors += 1
            logger.error(f"Cycle failed ({consecutive_errors}x): {type(e).__name__}: {e}")
            logger.debug("Full traceback:", exc_info=True)
            if consecutive_errors >= self.error_threshold:
                logger.error(f"Too many consecutive errors, backing off for {self.backoff_seconds}s...")
                self.sleep(self.backoff_seconds)
            return PollOutcome(consecutive_errors=consecutive_errors, error=e)

        return PollOutcome(consecutive_errors=0, result=result)

    def run(self, once: bool = False) -> PollOutcome:
        """
        3.2 Poll once, or forever with a fixed pause between cycles.

        Cycles never overlap: the next one is scheduled only after the
        previous one has finished.
        """
        outcome = self.poll(0)
        if once:
            return outcome

        logger.info(f"Monitoring every {self.poll_interval}s... (Ctrl+C to stop)")
        try:
            while True:
                self.sleep(self.poll_interval)
                outcome = self.poll(outcome.consecutive_errors)
        except KeyboardInterrupt:
            logger.info("Stopped by user")
        return outcome


def build_poll_loop(config: Dict[str, Any]) -> PollLoop:
    """4.0 Wire the monitor components from configuration."""
    fetcher = SitemapFetcher(config["sitemap_url"], config=config)
    prober = LivenessProber(config=config)
    notifier = DiscordNotifier(config.get("discord_webhook_url"), timeout=config.get("notify_timeout", 10))
    store = StateStore(config["state_file"])
    return PollLoop(store, fetcher, prober, notifier, config=config)
