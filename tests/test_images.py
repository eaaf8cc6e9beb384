import io

import pytest
from PIL import Image

from catalogstore.errors import ImageRejected
from catalogstore.images import (
    MAX_DIMENSION,
    MAX_IMAGE_BYTES,
    PendingImage,
    process_image,
    validate_upload,
)


def _png(width, height, mode="RGBA"):
    buffer = io.BytesIO()
    Image.new(mode, (width, height), (200, 120, 40, 255) if mode == "RGBA" else (200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_large_photos_are_downscaled():
    processed = process_image(PendingImage(temp_id="upload:0", data=_png(3200, 1600), filename="wide.png"))

    assert processed.extension in ("webp", "jpg")
    with Image.open(io.BytesIO(processed.data)) as result:
        assert max(result.size) == MAX_DIMENSION
        assert result.size == (1600, 800)


def test_small_images_keep_their_size():
    processed = process_image(PendingImage(temp_id="upload:0", data=_png(300, 200, mode="RGB")))
    with Image.open(io.BytesIO(processed.data)) as result:
        assert result.size == (300, 200)


def test_garbage_is_rejected():
    with pytest.raises(ImageRejected, match="notes.png"):
        process_image(PendingImage(temp_id="upload:0", data=b"not an image", filename="notes.png"))


@pytest.mark.parametrize(
    "filename, content_type",
    [("photo.jpg", "image/jpeg"), ("photo", "image/webp"), ("photo.PNG", ""), ("photo.avif", "application/octet-stream")],
)
def test_validate_upload_accepts_images(filename, content_type):
    validate_upload(filename, content_type, 1024)


def test_validate_upload_rejects_other_formats():
    with pytest.raises(ImageRejected) as excinfo:
        validate_upload("doc.pdf", "application/pdf", 10)
    assert not excinfo.value.too_large


def test_validate_upload_rejects_large_files():
    with pytest.raises(ImageRejected, match="4 MB") as excinfo:
        validate_upload("photo.jpg", "image/jpeg", MAX_IMAGE_BYTES + 1)
    assert excinfo.value.too_large


def test_decompression_bombs_are_rejected(monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    bomb = _png(100, 100, mode="RGB")

    with pytest.raises(ImageRejected, match="dimensions are too large") as excinfo:
        process_image(PendingImage(temp_id="upload:0", data=bomb, filename="bomb.png"))
    assert isinstance(excinfo.value.__cause__, Image.DecompressionBombError)
