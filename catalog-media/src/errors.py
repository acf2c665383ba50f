"""Exception types raised by the media pipeline."""


class MediaSyncError(Exception):
    """Base class for media pipeline errors."""


class ConfigurationError(MediaSyncError):
    """An enabled backend is missing required settings."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class DownloadError(MediaSyncError):
    """Fetching a remote image failed or returned something unusable."""


class UploadError(MediaSyncError):
    """A single storage backend rejected an upload."""

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service} upload failed: {message}")
