import pytest
from pathlib import Path

from media_catalog import config
from media_catalog.exceptions import MetadataExtractionError, MountError
from media_catalog.metadata.extract import MetadataExtractor
from media_catalog.scanning.filesystem import DiskScanner, is_ignored, path_to_text
from media_catalog.scanning.ingest import LibraryScanner

PROBE = {
    'container': 'Matroska',
    'codec': 'HEVC',
    'audio': 'AAC',
    'original_resolution': '3840x2160',
    'duration': 7200.0,
}

@pytest.fixture
def probe(monkeypatch):
    """Replaces MediaInfo probing with a canned result and records probed paths."""
    probed = []
    def _probe(self, path):
        probed.append(path)
        return dict(PROBE)
    monkeypatch.setattr(MetadataExtractor, "get_video_metadata", _probe)
    return probed

def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"video")
    return path


def test_path_to_text():
    assert path_to_text("/lib/Foo (2020).mkv") == "/lib/Foo (2020).mkv"
    assert path_to_text(Path("/lib/Amélie.mkv")) == "/lib/Amélie.mkv"
    assert path_to_text(b"/lib/plain.mkv") == "/lib/plain.mkv"
    # Undecodable bytes come back from the OS as lone surrogates
    assert path_to_text("/lib/bad\udcff.mkv") is None

def test_ignored_names():
    assert is_ignored(Path("/lib/.DS_Store"))
    assert is_ignored(Path("/lib/._Foo.mkv"))
    assert is_ignored(Path("/lib/Thumbs.db"))
    assert not is_ignored(Path("/lib/Foo.mkv"))

def test_hidden_directories_are_unsupported(db_ops, library):
    root = Path(library.location)
    scanner = LibraryScanner(db_ops, library)

    assert scanner.is_supported(root / "Foo (2020).mkv")
    assert scanner.is_supported(root / "Foo (2020)" / "Foo (2020).mkv")
    assert not scanner.is_supported(root / ".stash" / "Foo (2020).mkv")
    assert not scanner.is_supported(root / "Foo" / ".partial" / "Foo (2020).mkv")
    assert not scanner.is_supported(root / "Foo (2020).srt")

def test_iter_files_order_and_hidden_dirs(tmp_path):
    touch(tmp_path / "b.mkv")
    touch(tmp_path / ".DS_Store")
    touch(tmp_path / "A" / "x.mkv")
    touch(tmp_path / ".hidden" / "h.mkv")

    disk = DiskScanner(config.VIDEO_EXTS)

    assert list(disk.iter_files(tmp_path)) == [
        tmp_path / ".DS_Store",
        tmp_path / "b.mkv",
        tmp_path / "A" / "x.mkv",
    ]
    assert list(disk.iter_media_files(tmp_path)) == [
        tmp_path / "b.mkv",
        tmp_path / "A" / "x.mkv",
    ]

def test_mount_creates_work_and_file(db_ops, library, probe):
    path = touch(Path(library.location) / "The.Matrix.1999.1080p.BluRay.mkv")

    rec = LibraryScanner(db_ops, library).mount_file(path)

    assert rec.id > 0
    assert rec.target_file == str(path)
    assert (rec.raw_name, rec.raw_year, rec.quality) == ("The Matrix", 1999, "1080p")
    assert (rec.codec, rec.duration, rec.corrupt) == ("HEVC", 7200.0, False)

    work = db_ops.get_work_of_file(rec)
    assert (work.name, work.year) == ("The Matrix", 1999)
    assert probe == [path]

def test_mount_twice_returns_existing_record(db_ops, library, probe):
    path = touch(Path(library.location) / "Foo (2020).mkv")
    scanner = LibraryScanner(db_ops, library)

    first = scanner.mount_file(path)
    second = scanner.mount_file(path)

    assert second.id == first.id
    assert len(probe) == 1

def test_mount_joins_existing_work(db_ops, library, probe):
    root = Path(library.location)
    scanner = LibraryScanner(db_ops, library)

    a = scanner.mount_file(touch(root / "Dune (2021).mkv"))
    b = scanner.mount_file(touch(root / "Dune.2021.2160p.mkv"))
    c = scanner.mount_file(touch(root / "Dune (1984).mkv"))

    assert a.work_id == b.work_id
    assert c.work_id != a.work_id

def test_probe_failure_marks_corrupt(db_ops, library, monkeypatch):
    def _fail(self, path):
        raise MetadataExtractionError("No video track")
    monkeypatch.setattr(MetadataExtractor, "get_video_metadata", _fail)
    path = touch(Path(library.location) / "Broken (2010).mkv")

    rec = LibraryScanner(db_ops, library).mount_file(path)

    assert rec.corrupt is True
    assert rec.codec is None
    assert db_ops.get_file_by_path(str(path)).corrupt is True

def test_mount_rejects_missing_and_unrepresentable(db_ops, library, probe):
    scanner = LibraryScanner(db_ops, library)

    with pytest.raises(MountError):
        scanner.mount_file(Path(library.location) / "gone.mkv")
    with pytest.raises(MountError):
        scanner.mount_file(Path(library.location) / "bad\udcff.mkv")
    with pytest.raises(MountError):
        scanner.mount_file(Path(library.location))
    assert probe == []

def test_tv_episodes_share_one_work(db_ops, tmp_path, probe):
    root = tmp_path / "tv"
    library = db_ops.get_or_create_library(str(root), "tv", name="TV")
    scanner = LibraryScanner(db_ops, library)

    e1 = scanner.mount_file(touch(root / "Show Name" / "Show.Name.S01E01.720p.mkv"))
    e2 = scanner.mount_file(touch(root / "Show Name" / "Show Name - 1x02 - Second.mkv"))

    assert e1.work_id == e2.work_id
    assert (e1.season, e1.episode) == (1, 1)
    assert (e2.season, e2.episode) == (1, 2)
    assert db_ops.get_work_of_file(e1).name == "Show Name"

def test_start_mounts_supported_untracked_files(db_ops, library, probe):
    root = Path(library.location)
    touch(root / "Foo (2020).mkv")
    touch(root / "Bar (2019)" / "Bar (2019).mp4")
    touch(root / "Bar (2019)" / "Bar (2019).srt")
    touch(root / "._Foo (2020).mkv")

    scanner = LibraryScanner(db_ops, library)

    assert scanner.start() == 2
    assert db_ops.fetch_tracked_paths(library.id) == {
        str(root / "Foo (2020).mkv"),
        str(root / "Bar (2019)" / "Bar (2019).mp4"),
    }
    # Second pass finds nothing new
    assert scanner.start() == 0

def test_start_limited_to_subdirectory(db_ops, library, probe):
    root = Path(library.location)
    touch(root / "Foo (2020).mkv")
    sub = root / "New"
    touch(sub / "Baz (2001).mkv")

    assert LibraryScanner(db_ops, library).start(sub) == 1
    assert db_ops.fetch_tracked_paths(library.id) == {str(sub / "Baz (2001).mkv")}

def test_fix_orphans_mounts_only_untracked(db_ops, library, probe):
    root = Path(library.location)
    scanner = LibraryScanner(db_ops, library)
    tracked = scanner.mount_file(touch(root / "Foo (2020).mkv"))
    orphan = touch(root / "Later" / "Bar (2019).mkv")
    probe.clear()

    assert scanner.fix_orphans() == 1
    assert probe == [orphan]
    assert db_ops.get_file_by_path(str(orphan)) is not None
    assert db_ops.get_file_by_path(tracked.target_file).id == tracked.id

    assert scanner.fix_orphans() == 0
