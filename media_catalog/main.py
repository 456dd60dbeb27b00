import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from . import config
from .daemon import ScannerDaemon
from .database.db import DBManager
from .database.ops import DBOperations
from .exceptions import WatchSetupError
from .reporting import ReportGenerator
from .scanning.ingest import LibraryScanner

def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file next to the catalog."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / config.LOG_FILE_NAME

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("watchdog").setLevel(logging.WARNING)

def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Media Catalog: keep a catalog in sync with library folders")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--media-type", choices=config.MEDIA_TYPES, default="movie",
                        help="Media type of the library (default: movie)")
    common.add_argument("--db", type=Path, default=None,
                        help=f"Path for the SQLite catalog (default: ./{config.DEFAULT_DB_NAME})")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", parents=[common], help="Ingest every untracked file under a library root")
    scan.add_argument("root", type=Path, help="Library root directory")
    scan.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    watch = sub.add_parser("watch", parents=[common], help="Watch library roots and reconcile changes")
    watch.add_argument("roots", type=Path, nargs="+", help="Library root directories")
    watch.add_argument("--skip-initial-scan", action="store_true",
                       help="Do not scan the roots before watching")

    report = sub.add_parser("report", parents=[common], help="Write a catalog vs. disk CSV report")
    report.add_argument("root", type=Path, help="Library root directory")
    report.add_argument("--report-csv", type=str, default="catalog_report.csv",
                        help="Output path for the report CSV.")

    return p.parse_args(argv)

def run_scan(db_path: Path, root: Path, media_type: str, progress: bool) -> int:
    with DBManager(db_path) as conn:
        db_ops = DBOperations(conn)
        library = db_ops.get_or_create_library(str(root), media_type, name=root.name)
        return LibraryScanner(db_ops, library).start(progress=progress)

def run_report(db_path: Path, root: Path, media_type: str, output_csv: str):
    with DBManager(db_path) as conn:
        db_ops = DBOperations(conn)
        library = db_ops.get_or_create_library(str(root), media_type, name=root.name)
        return ReportGenerator(db_ops).generate_library_report(library, output_csv)

class LibraryWatcher(threading.Thread):
    """
    Runs one ScannerDaemon on its own thread with its own catalog connection.
    setup_error is set if the watch could not be established.
    """
    def __init__(self, db_path: Path, root: Path, media_type: str, initial_scan: bool):
        super().__init__(name=f"watch-{root.name}", daemon=True)
        self.db_path = db_path
        self.root = root
        self.media_type = media_type
        self.initial_scan = initial_scan
        self.setup_error: Optional[BaseException] = None
        self._daemon: Optional[ScannerDaemon] = None
        self._stopped = threading.Event()

    def run(self):
        try:
            with DBManager(self.db_path) as conn:
                db_ops = DBOperations(conn)
                library = db_ops.get_or_create_library(str(self.root), self.media_type, name=self.root.name)
                scanner = LibraryScanner(db_ops, library)
                if self.initial_scan and not self._stopped.is_set():
                    scanner.start()
                self._daemon = ScannerDaemon(db_ops, library, scanner)
                if self._stopped.is_set():
                    return
                self._daemon.start_daemon()
        except WatchSetupError as e:
            self.setup_error = e
            logging.error(f"Cannot watch {self.root}: {e}")
        except Exception as e:
            self.setup_error = e
            logging.exception(f"Watcher for {self.root} failed.")

    def stop(self):
        self._stopped.set()
        if self._daemon is not None:
            self._daemon.stop()

def run_watch(db_path: Path, roots: List[Path], media_type: str, initial_scan: bool) -> int:
    watchers = [LibraryWatcher(db_path, root, media_type, initial_scan) for root in roots]

    def _request_stop(signum, frame):
        logging.info(f"Received signal {signum}, stopping watchers...")
        for w in watchers:
            w.stop()

    signal.signal(signal.SIGTERM, _request_stop)

    for w in watchers:
        w.start()
    try:
        while any(w.is_alive() for w in watchers):
            for w in watchers:
                w.join(timeout=0.5)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        for w in watchers:
            w.stop()
        for w in watchers:
            w.join(timeout=10)

    failed = [w for w in watchers if w.setup_error is not None]
    return 1 if failed else 0

def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)

    db_path = (args.db or Path.cwd() / config.DEFAULT_DB_NAME).resolve()
    setup_logging(db_path.parent, args.verbose)

    logging.info("=== Media Catalog Started ===")
    logging.info(f"Catalog: {db_path}")

    try:
        if args.command == "scan":
            root = args.root.resolve()
            mounted = run_scan(db_path, root, args.media_type, progress=not args.no_progress)
            logging.info(f"Mounted {mounted} new files from {root}")
            sys.exit(0)

        if args.command == "report":
            root = args.root.resolve()
            counts = run_report(db_path, root, args.media_type, args.report_csv)
            logging.info(f"Report generation complete: {args.report_csv} {counts}")
            sys.exit(0)

        roots = [r.resolve() for r in args.roots]
        sys.exit(run_watch(db_path, roots, args.media_type, initial_scan=not args.skip_initial_scan))
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except Exception:
        logging.exception(f"Fatal error during {args.command}.")
        sys.exit(1)

if __name__ == "__main__":
    main()
