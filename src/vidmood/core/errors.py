"""Exception taxonomy for vidmood."""


class VidmoodError(Exception):
    """Base class for all vidmood errors."""


class TransientBackendError(VidmoodError):
    """A remote backend failed (transport, timeout, non-2xx, empty answer)."""

    def __init__(self, backend: str, message: str, status_code: int | None = None):
        self.backend = backend
        self.status_code = status_code
        super().__init__(f"{backend}: {message}")


class ParseError(VidmoodError):
    """A structured model answer could not be parsed."""


class NoAudioTrackError(VidmoodError):
    """The media source has no audio track."""


class MediaOpenError(VidmoodError):
    """The media source cannot be opened."""


class MediaReadError(VidmoodError):
    """Reading samples from an opened media source failed."""


class ModelLoadError(VidmoodError):
    """An on-device model could not be loaded."""
