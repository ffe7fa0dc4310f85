import pytest

from sitebot.services import thumbnail_storage


class _FakeR2:
    def __init__(self):
        self.uploads = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        self.uploads.append({"body": fileobj.read(), "bucket": bucket, "key": key, "extra": ExtraArgs})


def test_persist_thumbnail_uploads_and_returns_public_url(monkeypatch):
    fake = _FakeR2()
    monkeypatch.setenv("R2_BUCKET_NAME", "previews")
    monkeypatch.setenv("R2_PUBLIC_URL", "https://cdn.example.com/")
    monkeypatch.setattr(thumbnail_storage, "_get_r2_client", lambda: fake)

    url = thumbnail_storage.persist_thumbnail(b"\xff\xd8jpeg")

    upload = fake.uploads[0]
    assert upload["body"] == b"\xff\xd8jpeg"
    assert upload["bucket"] == "previews"
    assert upload["key"].startswith("thumbnails/") and upload["key"].endswith(".jpg")
    assert upload["extra"] == {"ContentType": "image/jpeg"}
    assert url == f"https://cdn.example.com/{upload['key']}"


def test_persist_thumbnail_requires_configuration(monkeypatch):
    monkeypatch.delenv("R2_BUCKET_NAME", raising=False)

    with pytest.raises(RuntimeError, match="R2_BUCKET_NAME"):
        thumbnail_storage.persist_thumbnail(b"img")


def test_persist_thumbnail_rejects_empty_image():
    with pytest.raises(ValueError):
        thumbnail_storage.persist_thumbnail(b"")
