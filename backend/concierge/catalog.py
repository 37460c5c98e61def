"""The store inventory file.

`{"cigars": [...]}` in camelCase, the same file the admin panel edits. Reads go
straight to disk on every call so admin edits show up on the next request.
"""

from __future__ import annotations
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from pydantic import ValidationError

from .models import CatalogEntry

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["name", "brand", "body", "strength", "description"]


class CatalogError(Exception):
    """The catalog file is missing or unreadable, or an admin edit is invalid."""


class CatalogNotFound(CatalogError):
    pass


class CatalogStore:
    def __init__(self, path: os.PathLike | str):
        self.path = Path(path)
        self._write_lock = threading.Lock()

    def read_raw(self) -> Dict[str, Any]:
        if not self.path.is_file():
            raise CatalogError(f"Catalog not found: {self.path}")
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Could not read catalog: {e}") from e
        if isinstance(data, list):
            data = {"cigars": data}
        if not isinstance(data, dict) or not isinstance(data.get("cigars"), list):
            raise CatalogError("Catalog must be an object with a 'cigars' list")
        return data

    def _write_raw(self, data: Dict[str, Any]) -> None:
        # write to a temp file next to the catalog, then swap it in
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".cigars-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def entries(self) -> List[CatalogEntry]:
        """Validated entries in file order. Broken records are skipped with a warning."""
        out: List[CatalogEntry] = []
        for i, raw in enumerate(self.read_raw()["cigars"]):
            try:
                out.append(CatalogEntry.model_validate(raw))
            except ValidationError as e:
                logger.warning("[Catalog] Skipping entry %d: %s", i, e.errors()[:1])
        return out

    def frame(self) -> pd.DataFrame:
        entries = self.entries()
        if not entries:
            return pd.DataFrame(columns=["id", "brand", "name", "origin", "strength", "body", "inventory_count"])
        return pd.DataFrame([e.model_dump() for e in entries])

    def get(self, cigar_id: str) -> Optional[CatalogEntry]:
        return next((e for e in self.entries() if e.id == str(cigar_id)), None)

    def find_by_barcode(self, barcode: str) -> Optional[CatalogEntry]:
        code = (barcode or "").strip()
        if not code:
            return None
        return next((e for e in self.entries() if e.barcode == code), None)

    def search(self, query: str) -> Optional[CatalogEntry]:
        """Loose lookup for the scan box: partial barcode, then name or brand containing the text."""
        q = (query or "").strip().lower()
        if not q:
            return None
        for e in self.entries():
            if (e.barcode and q in e.barcode.lower()) or q in e.name.lower() or q in e.brand.lower():
                return e
        return None

    def add(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        missing = [f for f in REQUIRED_FIELDS if not payload.get(f)]
        if missing:
            raise CatalogError(f"Missing required field: {missing[0]}")
        with self._write_lock:
            data = self.read_raw()
            ids = [int(c["id"]) for c in data["cigars"] if str(c.get("id", "")).isdigit()]
            record = dict(payload)
            record["id"] = str(max(ids, default=0) + 1)
            if not record.get("barcode"):
                record["barcode"] = f"AUTO{int(time.time() * 1000)}"
            count = record.pop("inventory", None) or record.get("inventoryCount") or 0
            try:
                record["inventoryCount"] = int(count)
            except (TypeError, ValueError) as e:
                raise CatalogError(f"Invalid inventory count: {count!r}") from e
            record.setdefault("tastingNotes", [])
            record.setdefault("pairings", {"alcoholic": [], "nonAlcoholic": []})
            record.setdefault("bestFor", [])
            try:
                CatalogEntry.model_validate(record)
            except ValidationError as e:
                raise CatalogError(f"Invalid cigar: {e.errors()[0]['msg']}") from e
            data["cigars"].append(record)
            self._write_raw(data)
        logger.info("[Catalog] Added %s %s (id=%s)", record["brand"], record["name"], record["id"])
        return record

    def update(self, cigar_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self._write_lock:
            data = self.read_raw()
            for i, c in enumerate(data["cigars"]):
                if str(c.get("id")) == str(cigar_id):
                    updated = {**c, **{k: v for k, v in changes.items() if k != "id"}}
                    try:
                        CatalogEntry.model_validate(updated)
                    except ValidationError as e:
                        raise CatalogError(f"Invalid cigar: {e.errors()[0]['msg']}") from e
                    data["cigars"][i] = updated
                    self._write_raw(data)
                    return updated
        raise CatalogNotFound("Cigar not found")

    def delete(self, cigar_id: str) -> Dict[str, Any]:
        with self._write_lock:
            data = self.read_raw()
            for i, c in enumerate(data["cigars"]):
                if str(c.get("id")) == str(cigar_id):
                    deleted = data["cigars"].pop(i)
                    self._write_raw(data)
                    logger.info("[Catalog] Deleted id=%s", cigar_id)
                    return deleted
        raise CatalogNotFound("Cigar not found")
