import logging
from pathlib import Path
from typing import Optional, Dict, Any

from pymediainfo import MediaInfo

from ..exceptions import MetadataExtractionError


class MetadataExtractor:
    """
    Probes container-level details of a video file with 'pymediainfo'.
    """

    def get_video_metadata(self, path: Path) -> Dict[str, Any]:
        """
        Returns a dict with keys: container, codec, audio,
        original_resolution and duration (seconds). Missing values are None.

        Raises:
            MetadataExtractionError: if MediaInfo cannot parse the file or it
                carries no video track.
        """
        try:
            mi = MediaInfo.parse(str(path))
        except Exception as e:
            raise MetadataExtractionError(f"MediaInfo failed for {path}: {e}") from e

        data: Dict[str, Any] = {
            'container': None,
            'codec': None,
            'audio': None,
            'original_resolution': None,
            'duration': None,
        }
        has_video = False

        for track in mi.tracks:
            if track.track_type == "General":
                data['container'] = getattr(track, "format", None)
                if getattr(track, "duration", None):
                    # MediaInfo duration is in milliseconds
                    data['duration'] = float(track.duration) / 1000.0
            elif track.track_type == "Video" and not has_video:
                has_video = True
                data['codec'] = getattr(track, "format", None)
                data['original_resolution'] = self._resolution(track)
            elif track.track_type == "Audio" and data['audio'] is None:
                data['audio'] = getattr(track, "format", None)

        if not has_video:
            raise MetadataExtractionError(f"No video track in {path}")

        logging.debug(f"Probed {path}: {data}")
        return data

    def _resolution(self, track) -> Optional[str]:
        width = getattr(track, "width", None)
        height = getattr(track, "height", None)
        if width and height:
            return f"{width}x{height}"
        return None
