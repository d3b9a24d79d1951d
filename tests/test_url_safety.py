"""Tests for the outbound URL guard."""

import asyncio
import socket

import pytest

from briefdeck.services.url_safety import (
    UnsafeUrlError,
    check_url,
    ensure_public_url,
    is_public_address,
)


def test_check_url_accepts_public_https():
    assert check_url("https://Example.com/feed.xml") == "example.com"


def test_check_url_accepts_public_ip_literal():
    assert check_url("http://93.184.216.34/") == "93.184.216.34"


@pytest.mark.parametrize(
    "url",
    [
        "ftp://example.com/file",
        "file:///etc/passwd",
        "http://localhost/",
        "http://app.localhost/",
        "http://printer.local/",
        "http://metadata.google.internal/computeMetadata/v1/",
        "http://127.0.0.1/",
        "http://10.0.0.5/",
        "http://192.168.1.1/",
        "http://169.254.169.254/latest/meta-data",
        "http://[::1]/",
        "http://[::ffff:10.0.0.1]/",
        "https://example.com:8443/",
        "http:///nohost",
    ],
)
def test_check_url_rejects_non_public(url):
    with pytest.raises(UnsafeUrlError):
        check_url(url)


def test_check_url_allow_localhost():
    assert check_url("http://localhost/", allow_localhost=True) == "localhost"


def test_is_public_address():
    assert is_public_address("8.8.8.8")
    assert not is_public_address("172.16.0.1")
    assert not is_public_address("::ffff:127.0.0.1")
    assert not is_public_address("not-an-ip")


async def test_ensure_public_url_rejects_private_resolution(monkeypatch):
    loop = asyncio.get_running_loop()

    async def fake_getaddrinfo(host, port, type=0):
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.1.2.3", 0))]

    monkeypatch.setattr(loop, "getaddrinfo", fake_getaddrinfo)
    with pytest.raises(UnsafeUrlError):
        await ensure_public_url("https://intranet.example.com/")


async def test_ensure_public_url_accepts_public_resolution(monkeypatch):
    loop = asyncio.get_running_loop()

    async def fake_getaddrinfo(host, port, type=0):
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0))]

    monkeypatch.setattr(loop, "getaddrinfo", fake_getaddrinfo)
    assert await ensure_public_url("https://example.com/") == "example.com"


async def test_ensure_public_url_unresolvable(monkeypatch):
    loop = asyncio.get_running_loop()

    async def fake_getaddrinfo(host, port, type=0):
        raise socket.gaierror("Name or service not known")

    monkeypatch.setattr(loop, "getaddrinfo", fake_getaddrinfo)
    with pytest.raises(UnsafeUrlError):
        await ensure_public_url("https://does-not-exist.example/")
