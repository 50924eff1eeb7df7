import logging
import re
from email.utils import formatdate, parsedate_to_datetime
from typing import Optional, Tuple

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from torrentgate.api.deps import get_torrent_or_404, wait_for_info
from torrentgate.errors import FileNotFound
from torrentgate.playlist import mime_type
from torrentgate.reader import TorrentFileReader

router = APIRouter()
logger = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024
_RANGE_SPEC = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")


class RangeNotSatisfiable(Exception):
    pass


def parse_range(header: str, size: int) -> Optional[Tuple[int, int]]:
    """
    Parses a Range header into (start, length). Returns None when the header
    asks for several ranges, or the file is empty; those are answered with the
    whole file.
    """
    if size == 0:
        return None
    unit, _, spec = header.partition("=")
    if unit.strip().lower() != "bytes" or not spec:
        raise RangeNotSatisfiable(header)
    specs = [s for s in spec.split(",") if s.strip()]
    if len(specs) != 1:
        return None

    match = _RANGE_SPEC.match(specs[0])
    if not match or match.group(1) == match.group(2) == "":
        raise RangeNotSatisfiable(header)
    first, last = match.groups()

    if first == "":
        # Suffix range: the final N bytes.
        suffix = int(last)
        if suffix == 0:
            raise RangeNotSatisfiable(header)
        suffix = min(suffix, size)
        return size - suffix, suffix

    start = int(first)
    if start >= size:
        raise RangeNotSatisfiable(header)
    end = size - 1 if last == "" else min(int(last), size - 1)
    if end < start:
        raise RangeNotSatisfiable(header)
    return start, end - start + 1


def _parse_http_date(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(parsedate_to_datetime(value).timestamp())
    except (TypeError, ValueError, IndexError):
        return None


async def _iter_file(reader: TorrentFileReader, start: int, length: int):
    try:
        reader.seek(start)
        remaining = length
        while remaining > 0:
            data = await reader.read(min(CHUNK_SIZE, remaining))
            if not data:
                break
            remaining -= len(data)
            yield data
    finally:
        reader.close()


@router.api_route("/{info_hash}/{file_path:path}", methods=["GET", "HEAD"])
async def stream_file(info_hash: str, file_path: str, request: Request):
    """Streams one file of a torrent, honouring Range and conditional headers."""
    torrent = get_torrent_or_404(request, info_hash)
    await wait_for_info(torrent, request)

    file = next((f for f in torrent.files() if f.path == file_path), None)
    if file is None:
        raise HTTPException(status_code=FileNotFound.status_code, detail="File not found")

    size = file.length
    headers = {"Accept-Ranges": "bytes"}
    modified = int(torrent.creation_date())
    if modified > 0:
        headers["Last-Modified"] = formatdate(modified, usegmt=True)

        unmodified_since = _parse_http_date(request.headers.get("if-unmodified-since"))
        if unmodified_since is not None and modified > unmodified_since:
            return Response(status_code=412, headers=headers)

        modified_since = _parse_http_date(request.headers.get("if-modified-since"))
        if modified_since is not None and modified <= modified_since:
            return Response(status_code=304, headers=headers)

    start, length, status_code = 0, size, 200
    range_header = request.headers.get("range")
    if range_header and "if-range" in request.headers:
        # Only date validators are issued, so anything else fails the check.
        if modified <= 0 or _parse_http_date(request.headers["if-range"]) != modified:
            range_header = None

    if range_header:
        try:
            byte_range = parse_range(range_header, size)
        except RangeNotSatisfiable:
            headers["Content-Range"] = f"bytes */{size}"
            return Response(status_code=416, headers=headers)
        if byte_range is not None:
            start, length = byte_range
            status_code = 206
            headers["Content-Range"] = f"bytes {start}-{start + length - 1}/{size}"

    headers["Content-Length"] = str(length)
    media_type = mime_type(file.path) or "application/octet-stream"

    if request.method == "HEAD":
        return Response(status_code=status_code, headers=headers, media_type=media_type)

    settings = request.app.state.settings
    reader = TorrentFileReader(
        torrent,
        file,
        cache=request.app.state.cache,
        readahead=settings.readahead,
        responsive=settings.responsive,
    )
    logger.info(f"Streaming {file.path} of {torrent.info_hash} ({status_code}, {start}+{length})")
    return StreamingResponse(
        _iter_file(reader, start, length),
        status_code=status_code,
        headers=headers,
        media_type=media_type,
    )
