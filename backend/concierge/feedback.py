from __future__ import annotations
import json
import logging
import secrets
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import FeedbackEntry, FeedbackRequest

logger = logging.getLogger(__name__)


class FeedbackStore:
    """Thumbs up/down on assistant answers.

    Every entry is logged first; the file write is best effort (read-only
    deployments still get the log line).
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> List[dict]:
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        return list(data.get("feedback", [])) if isinstance(data, dict) else []

    def add(self, request: FeedbackRequest, user_agent: Optional[str] = None) -> FeedbackEntry:
        entry = FeedbackEntry(
            **request.model_dump(),
            id=f"fb_{int(time.time() * 1000)}_{secrets.token_hex(3)}",
            timestamp=datetime.now(timezone.utc).isoformat(),
            user_agent=user_agent or "unknown",
        )
        record = entry.model_dump(by_alias=True, exclude_none=True)
        logger.info("[FEEDBACK] %s", json.dumps(record))

        with self._lock:
            try:
                try:
                    items = self._read()
                except FileNotFoundError:
                    items = []
                items.append(record)
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "w", encoding="utf-8") as f:
                    json.dump({"feedback": items}, f, indent=2)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("[FEEDBACK] Could not write to file: %s", e)
        return entry

    def list(self, rating: Optional[str] = None, limit: int = 200) -> tuple[List[FeedbackEntry], int]:
        """Newest first. Returns (page, total matching)."""
        try:
            items = self._read()
        except (OSError, json.JSONDecodeError):
            return [], 0
        entries = []
        for raw in items:
            try:
                entries.append(FeedbackEntry.model_validate(raw))
            except ValueError:
                logger.warning("[FEEDBACK] Skipping malformed entry")
        if rating in ("up", "down"):
            entries = [e for e in entries if e.rating == rating]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:max(limit, 0)], len(entries)
