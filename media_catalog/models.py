from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class Library:
    """
    A watched directory tree. Read-only for the lifetime of a watch.
    """
    id: int
    name: str
    location: str
    media_type: str     # movie/tv

@dataclass
class Work:
    """
    A logical title. Owns one or more MediaFiles; a Work with none is a ghost.
    """
    id: int
    library_id: int
    name: str
    year: Optional[int] = None
    added_at: Optional[str] = None

@dataclass
class MediaFile:
    """
    A physical file realizing (part of) a Work.
    target_file is the on-disk path and the key events are matched on.
    """
    id: int
    work_id: int
    library_id: int
    target_file: str
    raw_name: Optional[str] = None
    raw_year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None

    # Probe results (pymediainfo)
    quality: Optional[str] = None
    container: Optional[str] = None
    codec: Optional[str] = None
    audio: Optional[str] = None
    original_resolution: Optional[str] = None
    duration: Optional[float] = None
    corrupt: bool = False
    added_at: Optional[str] = None

@dataclass
class UpdateMediaFile:
    """
    Partial update for a MediaFile row. Fields left as None are not touched.
    """
    target_file: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

@dataclass
class ParsedName:
    """Title information recovered from a file name."""
    title: str
    year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None
    quality: Optional[str] = None
