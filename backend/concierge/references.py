"""Product photos from our own catalog, sent alongside a customer photo so the
vision model can compare bands instead of guessing from memory."""

from __future__ import annotations
import base64
import io
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import httpx
from PIL import Image, UnidentifiedImageError

from .cache import TTLCache
from .models import CatalogEntry

logger = logging.getLogger(__name__)

# Lines that get confused with each other; always include them when stocked
PRIORITY_REFERENCE_CIGARS = [
    ("My Father", "Blue"),
    ("My Father", "Le Bijou 1922"),
]
MAX_PER_BRAND = 2
USER_AGENT = "CigarConcierge/1.0"
_CACHE_KEY = "references"


@dataclass(frozen=True)
class ReferenceImage:
    brand: str
    name: str
    base64: str

    @property
    def label(self) -> str:
        return f"{self.brand} {self.name}"

    @property
    def data_url(self) -> str:
        return f"data:image/jpeg;base64,{self.base64}"


def select_reference_cigars(entries: Sequence[CatalogEntry], count: int = 6) -> List[CatalogEntry]:
    """Pick which catalog photos to send: priority lines first, then at most two per brand."""
    with_images = [e for e in entries if e.image_url and e.image_url.startswith(("http", "//"))]
    selected: List[CatalogEntry] = []
    for brand, name in PRIORITY_REFERENCE_CIGARS:
        found = next((e for e in with_images if e.brand == brand and e.name == name), None)
        if found is not None and found not in selected and len(selected) < count:
            selected.append(found)

    per_brand: Dict[str, int] = {}
    for e in selected:
        per_brand[e.brand] = per_brand.get(e.brand, 0) + 1
    for e in with_images:
        if len(selected) >= count:
            break
        if e in selected or per_brand.get(e.brand, 0) >= MAX_PER_BRAND:
            continue
        per_brand[e.brand] = per_brand.get(e.brand, 0) + 1
        selected.append(e)
    return selected


def shrink_to_jpeg(content: bytes, max_size: int = 384, quality: int = 70) -> Optional[str]:
    try:
        image = Image.open(io.BytesIO(content)).convert("RGB")
    except (UnidentifiedImageError, OSError):
        return None
    image.thumbnail((max_size, max_size))
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def fetch_image_as_base64(url: str, client: httpx.Client, max_size: int = 384) -> Optional[str]:
    """Download one product photo and return it as base64 JPEG, or None on any failure."""
    full_url = f"https:{url}" if url.startswith("//") else url
    try:
        res = client.get(full_url, headers={"User-Agent": USER_AGENT}, follow_redirects=True)
        res.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.info("[References] Could not fetch %s: %s", full_url, e)
        return None
    return shrink_to_jpeg(res.content, max_size)


class ReferenceImageLoader:
    """Fetches reference photos once and serves them from the TTL cache until they expire."""

    def __init__(
        self,
        cache: TTLCache,
        count: int = 6,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.cache = cache
        self.count = count
        self.timeout = timeout
        self._client = client

    def load(self, entries: Sequence[CatalogEntry]) -> List[ReferenceImage]:
        cached = self.cache.get(_CACHE_KEY)
        if cached is not None:
            return cached

        selected = select_reference_cigars(entries, self.count)
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            images = []
            for entry in selected:
                data = fetch_image_as_base64(entry.image_url, client)
                if data:
                    images.append(ReferenceImage(entry.brand, entry.name, data))
        finally:
            if self._client is None:
                client.close()
        logger.info("[References] Loaded %d of %d reference images", len(images), len(selected))
        self.cache.set(_CACHE_KEY, images)
        return images
