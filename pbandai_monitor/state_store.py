"""
1.0 State Store Module
Persists the monitor state to a single JSON document.

Document layout:
    {
        "etag": "W/\"abc123\"",
        "productIds": ["4573102630520", ...],
        "watchList": [
            {"id": "...", "imageUrl": "https://...", "firstSeen": "2025-12-10T18:02:11+00:00"}
        ]
    }

Loading never fails: a missing, unreadable or malformed document yields
an empty state. Saving writes a temporary file and renames it over the
target so readers never see a half-written document.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class WatchItem:
    """A product listed in the sitemap whose image is not reachable yet."""
    id: str
    probe_url: Optional[str]
    first_seen: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "imageUrl": self.probe_url, "firstSeen": self.first_seen}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "WatchItem":
        return cls(id=raw["id"], probe_url=raw.get("imageUrl") or None, first_seen=raw.get("firstSeen") or "")


@dataclass
class MonitorState:
    """Durable snapshot carried from one poll cycle to the next."""
    etag: str = ""
    known_ids: Set[str] = field(default_factory=set)
    watch_list: List[WatchItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "etag": self.etag,
            "productIds": sorted(self.known_ids),
            "watchList": [item.to_dict() for item in self.watch_list],
        }

    def watched_ids(self) -> Set[str]:
        return {item.id for item in self.watch_list}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_valid_document(raw: Any) -> bool:
    """2.0 Check the decoded document against the expected schema."""
    if not isinstance(raw, dict):
        return False
    if not isinstance(raw.get("etag", ""), str):
        return False

    product_ids = raw.get("productIds", [])
    if not isinstance(product_ids, list) or not all(isinstance(p, str) for p in product_ids):
        return False

    watch_list = raw.get("watchList", [])
    if not isinstance(watch_list, list):
        return False
    for entry in watch_list:
        if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
            return False
        if entry.get("imageUrl") is not None and not isinstance(entry["imageUrl"], str):
            return False
        if entry.get("firstSeen") is not None and not isinstance(entry["firstSeen"], str):
            return False
    return True


class StateStore:
    """
    3.0 StateStore Class
    Reads and writes the whole state document at a fixed path.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> MonitorState:
        """
        3.1 Load the persisted state.

        Returns an empty MonitorState when the file is absent, cannot be
        decoded, or does not match the expected schema.
        """
        if not os.path.exists(self.path):
            logger.info(f"No state file at {self.path}, starting with empty state")
            return MonitorState()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read state file {self.path}: {e}. Starting with empty state")
            return MonitorState()

        if not _is_valid_document(raw):
            logger.warning(f"State file {self.path} has an unexpected layout. Starting with empty state")
            return MonitorState()

        # Duplicate ids collapse onto their first occurrence
        watch_list: List[WatchItem] = []
        seen: Set[str] = set()
        for entry in raw.get("watchList", []):
            if entry["id"] in seen:
                continue
            seen.add(entry["id"])
            watch_list.append(WatchItem.from_dict(entry))

        return MonitorState(
            etag=raw.get("etag", ""),
            known_ids=set(raw.get("productIds", [])),
            watch_list=watch_list,
        )

    def save(self, state: MonitorState) -> None:
        """
        3.2 Persist the state, replacing the previous document atomically.

        Raises OSError when the document cannot be written.
        """
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(state.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)

        logger.debug(
            f"Saved state to {self.path}: {len(state.known_ids)} products, "
            f"{len(state.watch_list)} watched"
        )
