"""
Configuration constants for the media catalog daemon.
"""

# --- File Type Definitions ---
VIDEO_EXTS = {'.mkv', '.mp4', '.avi', '.m4v', '.mov', '.webm', '.ts', '.wmv', '.mpg', '.mpeg'}

# Media type -> extensions that the mount ingestor accepts
SUPPORTED_EXTS = {
    'movie': VIDEO_EXTS,
    'tv': VIDEO_EXTS,
}
MEDIA_TYPES = tuple(SUPPORTED_EXTS)

# Never ingested, even when the extension matches
IGNORED_NAMES = {'.DS_Store', 'Thumbs.db', 'desktop.ini'}

# --- Watching ---
# Quiet period before a coalesced notification is released
DEBOUNCE_SECONDS = 1.0
# How often the debouncer checks for due notifications
DEBOUNCE_TICK_SECONDS = 0.1

# --- File Name Parsing ---
YEAR_PATTERN = r'(?<!\d)(19\d{2}|20\d{2})(?!\d)'
EPISODE_PATTERNS = [
    r'[sS](\d{1,2})[ ._-]?[eE](\d{1,3})',
    r'(?<!\d)(\d{1,2})x(\d{2,3})(?!\d)',
]
QUALITY_PATTERN = r'(?i)(?<![a-z0-9])(2160p|1080p|720p|576p|480p|4k)(?![a-z0-9])'

# Release tags that end the title part of a name when no year is present
JUNK_TOKENS = {
    'bluray', 'brrip', 'bdrip', 'webrip', 'web-dl', 'webdl', 'hdtv', 'dvdrip',
    'x264', 'x265', 'h264', 'h265', 'hevc', 'xvid', 'remux', 'proper', 'repack',
}

# --- Database ---
DEFAULT_DB_NAME = "media_catalog.db"
LOG_FILE_NAME = "media_catalog.log"
