import mimetypes
import posixpath
from typing import Iterable, List
from urllib.parse import quote

from torrentgate.models import FileInfo, TorrentFile, TorrentInfo

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"

# Containers the stdlib table is missing or only learns from /etc/mime.types.
_EXTRA_TYPES = {
    ".mkv": "video/x-matroska",
    ".webm": "video/webm",
    ".m4v": "video/x-m4v",
    ".flv": "video/x-flv",
    ".wmv": "video/x-ms-wmv",
    ".ts": "video/mp2t",
    ".m2ts": "video/mp2t",
    ".ogv": "video/ogg",
    ".flac": "audio/flac",
    ".srt": "application/x-subrip",
}

_mime = mimetypes.MimeTypes()
for _ext, _type in _EXTRA_TYPES.items():
    _mime.add_type(_type, _ext)


def mime_type(path: str) -> str:
    """MIME type for a file name, empty when the extension is unknown."""
    return _mime.guess_type(path, strict=False)[0] or ""


def build_url(address: str, port: int, info_hash: str, path: str) -> str:
    return f"http://{address}:{port}/torrents/{info_hash}/{quote(path)}"


def wrap_files(files: Iterable[TorrentFile], info_hash: str, address: str, port: int) -> List[FileInfo]:
    """
    Converts a torrent's files to API entries, top-level files first and then
    by name within the same depth.
    """
    ordered = sorted(files, key=lambda f: (f.depth, posixpath.basename(f.path)))
    return [
        FileInfo(
            name=posixpath.basename(f.path),
            url=build_url(address, port, info_hash, f.path),
            length=f.length,
            mime_type=mime_type(f.path),
        )
        for f in ordered
    ]


def build_playlist(files: Iterable[FileInfo]) -> str:
    playlist = ["#EXTM3U"]
    for file in files:
        if file.mime_type.startswith("video"):
            playlist.append(f"#EXTINF:0,{file.name}")
            playlist.append(file.url)
    return "\n".join(playlist)


def wrap_torrent(torrent, address: str, port: int) -> TorrentInfo:
    """Projects a resolved torrent. Callers await torrent.wait_info() first."""
    files = wrap_files(torrent.files(), torrent.info_hash, address, port)
    return TorrentInfo(
        name=torrent.name,
        info_hash=torrent.info_hash,
        files=files,
        length=sum(f.length for f in files),
        playlist=build_playlist(files),
    )
