"""
Change notifications delivered by the watch source.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Create:
    path: str


@dataclass(frozen=True)
class Rename:
    from_path: str
    to_path: str


@dataclass(frozen=True)
class Remove:
    path: str


@dataclass(frozen=True)
class Other:
    """Anything the reconciler does not act on (e.g. content writes)."""
    kind: str
    path: str


@dataclass(frozen=True)
class WatchError:
    """A failure of the watch layer itself, reported in-band."""
    error: BaseException


Notification = Union[Create, Rename, Remove, Other, WatchError]
