import csv
import logging
from collections import Counter
from pathlib import Path
from typing import Dict, List

from .database.ops import DBOperations
from .models import Library, MediaFile
from .scanning.filesystem import DiskScanner, path_to_text
from . import config

class ReportGenerator:
    """
    Compares a library's catalog rows with what is on disk and writes one CSV
    row per file.
    """
    def __init__(self, db_ops: DBOperations):
        self.db = db_ops

    def generate_library_report(self, library: Library, output_csv: str) -> Dict[str, int]:
        """
        Statuses:
          Tracked         - on disk and in the catalog
          Not In Catalog  - supported file on disk with no record (orphan)
          Unsupported     - on disk, extension not ingested for this media type
          Missing On Disk - catalog record whose file is gone

        Returns a {status: count} summary.
        """
        root = Path(library.location)
        if not root.exists():
            raise FileNotFoundError(f"Library path {root} does not exist.")

        logging.info(f"Generating report for {root} -> {output_csv}")

        # --- 1. Bulk Load Data ---
        records = self._load_record_map(library.id)
        work_names = self._load_work_names(library.id)
        disk = DiskScanner(config.SUPPORTED_EXTS[library.media_type])

        headers = ["Path", "Status", "Work", "Quality", "Notes"]
        counts: Counter = Counter()
        seen = set()

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)

            for file_path in disk.iter_files(root):
                text = path_to_text(file_path)
                if text is None:
                    row = [repr(file_path), "Unsupported", "", "", "Path is not valid UTF-8"]
                elif text in records:
                    seen.add(text)
                    rec = records[text]
                    note = "Probe failed" if rec.corrupt else ""
                    row = [text, "Tracked", work_names.get(rec.work_id, ""), rec.quality or "", note]
                elif disk.is_supported(file_path):
                    row = [text, "Not In Catalog", "", "", "Pending orphan fix"]
                else:
                    row = [text, "Unsupported", "", "", f"Extension {file_path.suffix or '(none)'}"]
                counts[row[1]] += 1
                writer.writerow(row)

            for text, rec in records.items():
                if text in seen:
                    continue
                counts["Missing On Disk"] += 1
                writer.writerow([text, "Missing On Disk", work_names.get(rec.work_id, ""),
                                 rec.quality or "", f"mediafile_id={rec.id}"])

        logging.info(f"Report complete: {dict(counts)}")
        return dict(counts)

    # --- Data Loaders ---

    def _load_record_map(self, library_id: int) -> Dict[str, MediaFile]:
        """Returns Dict[target_file] -> MediaFile"""
        files: List[MediaFile] = self.db.fetch_library_files(library_id)
        return {rec.target_file: rec for rec in files}

    def _load_work_names(self, library_id: int) -> Dict[int, str]:
        """Returns Dict[work_id] -> display name"""
        cur = self.db.conn.cursor()
        cur.execute("SELECT id, name, year FROM works WHERE library_id = ?", (library_id,))
        return {
            row[0]: f"{row[1]} ({row[2]})" if row[2] else row[1]
            for row in cur.fetchall()
        }
