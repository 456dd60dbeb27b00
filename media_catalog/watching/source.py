"""
Debounced filesystem change source for one library root.

watchdog delivers raw events on its observer thread. They are coalesced per
path by a Debouncer and released, after a quiet period, into a queue that the
daemon loop consumes. Watch-layer failures travel through the same queue as
WatchError items so the consumer sees them in order.
"""
import os
import queue
import logging
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .. import config
from ..exceptions import WatchSetupError
from .events import Create, Notification, Other, Remove, Rename, WatchError

# Queue marker for "source closed"
_CLOSED = object()


class Debouncer:
    """
    Coalesces raw events per path and releases one notification per path
    once it has been quiet for `delay` seconds.

    Rules:
      create + modify        -> Create
      create + remove        -> nothing
      create + move          -> Create(dest)
      rename a->b, b->c      -> Rename(a, c)
      rename a->b + remove b -> Remove(a)
      modify alone           -> Other('modified')

    Removals that a later event would hide are released at once instead:
      remove b + move a->b             -> Remove(b), then Rename(a, b)
      rename a->b, create a, remove b  -> Remove(a), then Create(a)
    """
    def __init__(self,
                 delay: float,
                 emit: Callable[[Notification], None],
                 clock: Callable[[], float] = time.monotonic):
        self.delay = delay
        self.emit = emit
        self.clock = clock
        # path -> (notification, deadline); kept in deadline order
        self._pending: "OrderedDict[str, Tuple[Notification, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def _put(self, key: str, notification: Notification):
        self._pending.pop(key, None)
        self._pending[key] = (notification, self.clock() + self.delay)

    def _take(self, key: str) -> Optional[Notification]:
        entry = self._pending.pop(key, None)
        return entry[0] if entry else None

    def _displace(self, key: str, released: List[Notification]):
        """
        Clears the pending entry at a path that something is being moved onto.
        A record that lived there is gone and must be removed before the move lands.
        """
        displaced = self._take(key)
        if isinstance(displaced, Remove):
            released.append(displaced)
        elif isinstance(displaced, Rename):
            released.append(Remove(displaced.from_path))

    def _release(self, released: List[Notification]):
        for notification in released:
            self.emit(notification)

    def created(self, path: str):
        with self._lock:
            self._put(path, Create(path))

    def modified(self, path: str):
        with self._lock:
            current = self._take(path)
            # Writes to a pending path only extend its window
            self._put(path, current or Other("modified", path))

    def removed(self, path: str):
        released: List[Notification] = []
        with self._lock:
            current = self._take(path)
            if isinstance(current, Create):
                return
            if isinstance(current, Rename):
                origin = current.from_path
                pending = self._pending.get(origin)
                if pending and isinstance(pending[0], (Create, Rename)):
                    # Something new already sits at the old name; it stays pending
                    released.append(Remove(origin))
                else:
                    self._put(origin, Remove(origin))
            else:
                self._put(path, Remove(path))
        self._release(released)

    def moved(self, src: str, dest: str):
        released: List[Notification] = []
        with self._lock:
            current = self._take(src)
            self._displace(dest, released)
            if isinstance(current, Create):
                self._put(dest, Create(dest))
            elif isinstance(current, Rename):
                if current.from_path != dest:
                    self._put(dest, Rename(current.from_path, dest))
            else:
                self._put(dest, Rename(src, dest))
        self._release(released)

    def flush_due(self) -> int:
        """Emits every notification whose quiet period has elapsed."""
        now = self.clock()
        due = []
        with self._lock:
            while self._pending:
                key, (notification, deadline) = next(iter(self._pending.items()))
                if deadline > now:
                    break
                del self._pending[key]
                due.append(notification)
        for notification in due:
            self.emit(notification)
        return len(due)

    def flush_all(self) -> int:
        with self._lock:
            due = [n for n, _ in self._pending.values()]
            self._pending.clear()
        for notification in due:
            self.emit(notification)
        return len(due)


class _ChangeCollector(FileSystemEventHandler):
    """Forwards watchdog events to the debouncer. Runs on the observer thread."""

    def __init__(self, debouncer: Debouncer, on_error: Callable[[BaseException], None]):
        super().__init__()
        self.debouncer = debouncer
        self.on_error = on_error

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception as e:
            self.on_error(e)

    def on_created(self, event: FileSystemEvent) -> None:
        self.debouncer.created(os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        self.debouncer.removed(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory mtime changes just echo changes to their children
        if event.is_directory:
            return
        self.debouncer.modified(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        self.debouncer.moved(os.fsdecode(event.src_path), os.fsdecode(event.dest_path))


class WatchSource:
    """
    Recursive, debounced watch on a library root.

    Usage:
        source = WatchSource(root)
        source.start()            # raises WatchSetupError
        for notification in source:
            ...
        source.close()            # from any thread; ends the iteration
    """
    def __init__(self,
                 root: Path,
                 recursive: bool = True,
                 delay: float = config.DEBOUNCE_SECONDS,
                 observer_factory: Callable[[], object] = Observer):
        self.root = Path(root)
        self.recursive = recursive
        self.queue: "queue.Queue" = queue.Queue()
        self.debouncer = Debouncer(delay, self.queue.put)
        self._observer_factory = observer_factory
        self._observer = None
        self._ticker: Optional[threading.Thread] = None
        self._stopping = threading.Event()
        self._observer_failed = False
        self._closed = False

    def start(self) -> "WatchSource":
        if not self.root.is_dir():
            raise WatchSetupError(f"Library root is not a directory: {self.root}")

        observer = self._observer_factory()
        handler = _ChangeCollector(self.debouncer, self._report_error)
        try:
            observer.schedule(handler, str(self.root), recursive=self.recursive)
            observer.start()
        except Exception as e:
            # e.g. inotify watch limit reached
            raise WatchSetupError(f"Cannot watch {self.root}: {e}") from e

        self._observer = observer
        self._ticker = threading.Thread(
            target=self._tick, name=f"debounce-{self.root.name}", daemon=True
        )
        self._ticker.start()
        logging.info(f"Watching {self.root} (recursive={self.recursive}, debounce={self.debouncer.delay}s)")
        return self

    def _tick(self):
        while not self._stopping.wait(config.DEBOUNCE_TICK_SECONDS):
            try:
                self.debouncer.flush_due()
            except Exception as e:
                self._report_error(e)

            observer = self._observer
            if (observer is not None and not observer.is_alive()
                    and not self._observer_failed and not self._stopping.is_set()):
                self._observer_failed = True
                self._report_error(RuntimeError(f"Observer for {self.root} stopped unexpectedly"))

    def _report_error(self, error: BaseException):
        self.queue.put(WatchError(error))

    def get(self, timeout: Optional[float] = None) -> Optional[Notification]:
        """
        Blocks for the next notification. Returns None once the source is closed.
        Raises queue.Empty if timeout expires first.
        """
        item = self.queue.get(timeout=timeout)
        if item is _CLOSED:
            # Leave the marker for any other reader
            self.queue.put(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[Notification]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item

    def close(self):
        """Stops watching. Notifications still inside the debounce window are dropped."""
        if self._closed:
            return
        self._closed = True
        self._stopping.set()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
        if self._ticker is not None and self._ticker is not threading.current_thread():
            self._ticker.join(timeout=5)

        self.queue.put(_CLOSED)
        logging.info(f"Stopped watching {self.root}")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
