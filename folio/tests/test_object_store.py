"""Tests for the filesystem object store and its signed upload URLs."""

from urllib.parse import parse_qs, urlparse

import pytest

from folio.core.errors import NotFoundError, ObjectExistsError, PersistenceError, ValidationError
from folio.features.storage.object_store import LocalObjectStore


class Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def local(tmp_path, clock):
    return LocalObjectStore(root=str(tmp_path), base_url="https://cdn.test/", signing_key="secret", clock=clock)


def signed(url):
    query = parse_qs(urlparse(url).query)
    return int(query["expires"][0]), query["signature"][0]


def test_put_is_write_once(local):
    url = local.put("ebooks", "exports/1-1000.html", b"<html/>", "text/html")
    assert url == "https://cdn.test/ebooks/exports/1-1000.html"
    assert local.file_path("ebooks", "exports/1-1000.html").read_bytes() == b"<html/>"

    with pytest.raises(ObjectExistsError):
        local.put("ebooks", "exports/1-1000.html", b"other", "text/html")
    assert local.file_path("ebooks", "exports/1-1000.html").read_bytes() == b"<html/>"


@pytest.mark.parametrize("key", ["../escape.txt", "/abs.txt", "a//b.txt", "a/./b.txt", ""])
def test_keys_cannot_leave_the_bucket(local, key):
    with pytest.raises(ValidationError):
        local.put("ebooks", key, b"x", "text/plain")


def test_missing_object(local):
    with pytest.raises(NotFoundError):
        local.file_path("ebooks", "nope.html")


def test_presigned_url_verifies_until_expiry(local, clock):
    expires, signature = signed(local.presigned_put_url("cover-images", "1-a.png", 3600))
    assert expires == int(clock.now) + 3600
    assert local.verify_presigned("cover-images", "1-a.png", expires, signature)

    assert not local.verify_presigned("cover-images", "1-b.png", expires, signature)
    assert not local.verify_presigned("cover-images", "1-a.png", expires + 1, signature)

    clock.now += 3601
    assert not local.verify_presigned("cover-images", "1-a.png", expires, signature)


def test_presign_requires_signing_key(tmp_path):
    store = LocalObjectStore(root=str(tmp_path), signing_key="")
    with pytest.raises(PersistenceError):
        store.presigned_put_url("cover-images", "1-a.png", 60)
    assert not store.verify_presigned("cover-images", "1-a.png", 0, "sig")
