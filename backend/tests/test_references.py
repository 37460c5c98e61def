import io

import httpx
from PIL import Image

from concierge.cache import TTLCache
from concierge.prompts import build_image_prompt
from concierge.references import ReferenceImageLoader, select_reference_cigars


def jpeg_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (600, 400), (90, 60, 30)).save(buf, format="JPEG")
    return buf.getvalue()


# Confusable lines first, then at most two per brand
def test_select_reference_cigars(entries):
    picked = select_reference_cigars(entries, count=6)
    assert [e.id for e in picked] == ["6", "5", "1", "2", "3", "4"]

def test_select_skips_entries_without_photos(entries):
    no_photos = [e.model_copy(update={"image_url": None}) for e in entries]
    assert select_reference_cigars(no_photos) == []

# Photos are fetched once and then served from cache; failed downloads are skipped
def test_loader_fetches_once(entries):
    calls = []

    def handler(request):
        calls.append(str(request.url))
        if "padron-1926" in str(request.url):
            return httpx.Response(404)
        return httpx.Response(200, content=jpeg_bytes())

    client = httpx.Client(transport=httpx.MockTransport(handler))
    loader = ReferenceImageLoader(TTLCache(600), count=6, client=client)
    images = loader.load(entries)
    assert [i.label for i in images][:2] == ["My Father Blue", "My Father Le Bijou 1922"]
    assert len(images) == 5
    assert images[0].data_url.startswith("data:image/jpeg;base64,")

    assert loader.load(entries) == images
    assert len(calls) == 6

# The vision prompt lists references in the order they are sent
def test_image_prompt_lists_references(entries):
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=jpeg_bytes())))
    images = ReferenceImageLoader(TTLCache(600), count=2, client=client).load(entries)
    prompt = build_image_prompt(75, images, "is this a blue?")
    assert "1. My Father Blue" in prompt
    assert "2. My Father Le Bijou 1922" in prompt
    assert "IF CONFIDENCE >= 75" in prompt
    assert "Customer says: is this a blue?" in prompt

# A malformed photo URL in the catalog is skipped, the other references still load
def test_loader_skips_malformed_url(entries):
    broken = [e.model_copy(update={"image_url": "http://exa mple.com/\x00.jpg"}) if e.id == "6" else e
              for e in entries]
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=jpeg_bytes())))
    images = ReferenceImageLoader(TTLCache(600), count=6, client=client).load(broken)
    labels = [i.label for i in images]
    assert "My Father Blue" not in labels
    assert len(images) == 5
