import base64
import io
import json
import shutil
from dataclasses import replace

import pytest
from PIL import Image

from concierge.catalog import CatalogStore
from concierge.config import BASE_DIR, Settings
from concierge.service import ConciergeService

SAMPLE_CATALOG = BASE_DIR / "data" / "cigars.json"


class FakeGenerator:
    """Stands in for the model providers: hands out canned replies and records what it was asked."""

    name = "fake"

    def __init__(self, *replies, available=True):
        self.replies = list(replies)
        self.requests = []
        self.available = available

    def generate(self, request):
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply


def jpeg_data_url(size=(64, 64), color=(110, 70, 40)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def entries():
    return CatalogStore(SAMPLE_CATALOG).entries()


@pytest.fixture
def catalog_path(tmp_path):
    path = tmp_path / "cigars.json"
    shutil.copy(SAMPLE_CATALOG, path)
    return path


@pytest.fixture
def store(catalog_path):
    return CatalogStore(catalog_path)


@pytest.fixture
def settings(tmp_path, catalog_path):
    return Settings(
        catalog_path=catalog_path,
        feedback_path=tmp_path / "feedback.json",
        evaluations_path=tmp_path / "evaluations.json",
        admin_password="secret",
    )


@pytest.fixture
def photo():
    return jpeg_data_url()


@pytest.fixture
def make_service(store, settings):
    # make_service('{"message": ...}', ...) -> (service, generator)
    def _make(*replies, available=True, **overrides):
        generator = FakeGenerator(*replies, available=available)
        s = replace(settings, **overrides)
        return ConciergeService(store, generator, s), generator
    return _make


def reply(message="", cigars=(), confidence=None):
    data = {"message": message, "cigars": [dict(c) for c in cigars]}
    if confidence is not None:
        data["confidence"] = confidence
    return json.dumps(data)
