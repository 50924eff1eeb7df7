import asyncio

import pytest
from fastapi import HTTPException

from fakes import INFO_HASH, FakeTorrent
from torrentgate.api.deps import CLIENT_CLOSED_REQUEST, wait_for_info


class FakeRequest:
    def __init__(self, disconnected=False):
        self.disconnected = disconnected
        self.checks = 0

    async def is_disconnected(self):
        self.checks += 1
        return self.disconnected


@pytest.mark.asyncio
async def test_resolved_torrent_returns_immediately():
    request = FakeRequest(disconnected=True)

    await wait_for_info(FakeTorrent("Show", INFO_HASH), request)

    assert request.checks == 0


@pytest.mark.asyncio
async def test_waits_until_metadata_arrives():
    torrent = FakeTorrent("Show", INFO_HASH, resolved=False)
    waiter = asyncio.ensure_future(wait_for_info(torrent, FakeRequest()))
    await asyncio.sleep(0.3)
    assert not waiter.done()

    torrent.resolved = True
    torrent._info_ready.set()

    await asyncio.wait_for(waiter, 1)


@pytest.mark.asyncio
async def test_client_disconnect_ends_wait():
    torrent = FakeTorrent("Show", INFO_HASH, resolved=False)

    with pytest.raises(HTTPException) as exc:
        await asyncio.wait_for(wait_for_info(torrent, FakeRequest(disconnected=True)), 2)

    assert exc.value.status_code == CLIENT_CLOSED_REQUEST
