import re
from pathlib import Path
from typing import Optional

from .. import config
from ..models import ParsedName


class NameParser:
    """
    Recovers title, year, episode and quality from release-style file names,
    e.g. 'The.Matrix.1999.1080p.BluRay.mkv' or 'Show Name - S01E02 - Pilot.mkv'.
    """

    def __init__(self):
        self.year_re = re.compile(config.YEAR_PATTERN)
        self.episode_res = [re.compile(p) for p in config.EPISODE_PATTERNS]
        self.quality_re = re.compile(config.QUALITY_PATTERN)

    def parse(self, path: Path, media_type: str = 'movie') -> ParsedName:
        stem = path.stem
        text = self._normalize(stem)

        quality = None
        q = self.quality_re.search(text)
        if q:
            quality = q.group(1).lower()

        season = episode = None
        cut = len(text)

        if media_type == 'tv':
            for pat in self.episode_res:
                m = pat.search(text)
                if m:
                    season, episode = int(m.group(1)), int(m.group(2))
                    cut = m.start()
                    break

        year = None
        # The last year after the start of the name wins: '2001 A Space Odyssey 1968'
        years = [m for m in self.year_re.finditer(text[:cut]) if m.start() > 0]
        if years:
            year = int(years[-1].group(1))
            cut = years[-1].start()

        if year is None and season is None:
            cut = min(cut, self._junk_start(text))

        title = self._clean_title(text[:cut]) or self._clean_title(text) or stem
        return ParsedName(title=title, year=year, season=season, episode=episode, quality=quality)

    def _normalize(self, stem: str) -> str:
        # Dots and underscores stand in for spaces in release names
        s = re.sub(r'[._]+', ' ', stem)
        return re.sub(r'\s+', ' ', s).strip()

    def _junk_start(self, text: str) -> int:
        """Index of the first release tag (quality, codec, source), or len(text)."""
        positions = [len(text)]
        q = self.quality_re.search(text)
        if q and q.start() > 0:
            positions.append(q.start())
        for m in re.finditer(r'[^\s\[\]()]+', text):
            if m.start() > 0 and m.group(0).lower() in config.JUNK_TOKENS:
                positions.append(m.start())
                break
        return min(positions)

    def _clean_title(self, raw: str) -> Optional[str]:
        s = re.sub(r'\[[^\]]*\]', ' ', raw)
        s = s.strip(" -([{")
        s = re.sub(r'\s+', ' ', s).strip()
        return s or None
