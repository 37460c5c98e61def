import base64
import io

import pytest
from PIL import Image

from concierge.images import (
    ImagePayloadError,
    ImageTooLargeError,
    decode_image,
    prepare_upload,
    resize_data_url,
    split_data_url,
)
from conftest import jpeg_data_url

# Data URLs split into mime and payload; bare base64 is treated as JPEG
def test_split_data_url():
    assert split_data_url("data:image/png;base64,AAAA") == ("image/png", "AAAA")
    assert split_data_url("AAAA") == ("image/jpeg", "AAAA")

# Small photos pass through untouched
def test_small_photo_unchanged(photo):
    assert prepare_upload(photo) == photo

# Bare base64 gets a data URL prefix
def test_bare_base64_prefixed(photo):
    bare = photo.split(",", 1)[1]
    assert prepare_upload(bare).startswith("data:image/jpeg;base64,")

# Large photos are downscaled to fit 1024px
def test_large_photo_resized():
    big = jpeg_data_url(size=(2400, 1600))
    out = prepare_upload(big, compress_over_kb=0)
    image = Image.open(io.BytesIO(decode_image(out)))
    assert max(image.size) <= 1024

# PNG stays PNG when resized
def test_resize_keeps_png():
    buf = io.BytesIO()
    Image.new("RGB", (1500, 900), (20, 20, 20)).save(buf, format="PNG")
    data = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
    assert resize_data_url(data).startswith("data:image/png;base64,")

# Over the upload limit is rejected outright
def test_too_large(photo):
    with pytest.raises(ImageTooLargeError):
        prepare_upload(photo, max_upload_bytes=10)

# Still too big for the model after compression
def test_too_large_for_model(photo):
    with pytest.raises(ImageTooLargeError):
        prepare_upload(photo, max_model_bytes=10)

def test_unreadable():
    with pytest.raises(ImagePayloadError):
        decode_image("data:image/jpeg;base64,")
    with pytest.raises(ImagePayloadError):
        resize_data_url("data:image/jpeg;base64," + base64.b64encode(b"not an image").decode("ascii"))
