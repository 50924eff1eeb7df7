from dataclasses import dataclass
from typing import List

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class TorrentFile:
    """One file of a resolved torrent, as the engine lays it out."""
    index: int
    path: str  # relative to the torrent root, "/"-separated
    length: int
    offset: int  # byte offset of the file inside the torrent's data

    @property
    def depth(self) -> int:
        return len(self.path.split("/"))


# Pydantic Models for API responses
class FileInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    url: str = Field(alias="URL")
    length: int = Field(alias="Length")
    mime_type: str = Field(alias="MimeType")


class TorrentInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    info_hash: str = Field(alias="InfoHash")
    files: List[FileInfo] = Field(alias="Files")
    length: int = Field(alias="Length")
    playlist: str = Field(alias="Playlist")
