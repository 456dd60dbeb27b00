"""
Custom exception hierarchy for the media catalog.

Only WatchSetupError is meant to escape the daemon; everything else is
caught and logged at the handler that triggered it.
"""


class MediaCatalogError(Exception):
    """Base exception for all media catalog errors."""
    pass


class DatabaseError(MediaCatalogError):
    """Raised when a catalog query or mutation fails."""
    pass


class MetadataExtractionError(MediaCatalogError):
    """Raised when a media file cannot be probed."""
    pass


class MountError(MediaCatalogError):
    """Raised when a file cannot be ingested into the catalog."""
    pass


class WatchSetupError(MediaCatalogError):
    """Raised when a watch cannot be established on a library root."""
    pass
