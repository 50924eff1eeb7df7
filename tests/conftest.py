"""Pytest configuration and shared fixtures for torrentgate tests."""
import threading

import pytest
from fastapi.testclient import TestClient

from fakes import INFO_HASH, FakeEngine, FakeTorrent, interfaces
from torrentgate.app import create_app
from torrentgate.config import Settings
from torrentgate.netaddr import LocalAddressResolver


@pytest.fixture
def settings(tmp_path):
    return Settings(download_dir=tmp_path, port=6969, resume_torrents=True)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def resolver():
    return LocalAddressResolver("192.", interfaces=interfaces("10.0.0.5", "192.168.1.20"))


@pytest.fixture
def shutdown():
    return threading.Event()


@pytest.fixture
def app(settings, engine, resolver, shutdown):
    return create_app(settings, engine, resolver=resolver, request_shutdown=shutdown.set)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def show():
    """A resolved torrent holding only video files, at several depths."""
    return FakeTorrent(
        "Show",
        INFO_HASH,
        {
            "ep2.mkv": b"second episode data......",
            "extras/bonus.avi": b"bonus",
            "ep1.mp4": b"0123456789abcdefghijklmnopqrstuvwxyz",
            "extras/a/deep.mkv": b"deep",
        },
    )
