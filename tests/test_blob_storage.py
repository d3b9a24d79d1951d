"""Tests for the local raw email store."""

import pytest

from briefdeck.services.blob_storage import BlobStorage, safe_key_part


async def test_put_get_exists(tmp_path):
    storage = BlobStorage(tmp_path / "blobs")
    key = "emails/3/message.eml"

    assert not await storage.exists(key)
    assert await storage.put(key, b"Subject: hi\r\n\r\nbody") == key
    assert await storage.exists(key)
    assert await storage.get(key) == b"Subject: hi\r\n\r\nbody"

    await storage.put(key, b"replaced")
    assert await storage.get(key) == b"replaced"
    assert list((tmp_path / "blobs" / "emails" / "3").iterdir()) == [tmp_path / "blobs" / "emails" / "3" / "message.eml"]


async def test_key_cannot_escape_root(tmp_path):
    storage = BlobStorage(tmp_path / "blobs")
    with pytest.raises(ValueError):
        await storage.put("../outside.eml", b"x")
    assert not (tmp_path / "outside.eml").exists()


def test_safe_key_part():
    assert safe_key_part("<abc@mail.example.com>") == "abc_mail.example.com"
    assert safe_key_part("../../etc") == "etc"
    assert safe_key_part("<>") == "blob"
