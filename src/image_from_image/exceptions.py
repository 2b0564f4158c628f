"""Custom exceptions for image-from-image."""


class ImageFromImageError(Exception):
    """Base exception for image-from-image errors."""

    pass


class ConfigurationError(ImageFromImageError):
    """Raised when settings, surfaces or selector overrides are invalid."""

    pass


class DiscoveryError(ImageFromImageError):
    """Raised when input or profile directories cannot be enumerated."""

    pass


class CounterStoreError(ImageFromImageError):
    """Raised when a per-file counter cannot be read or written."""

    pass


class BrowserError(ImageFromImageError):
    """Raised when browser operations fail."""

    pass


class ElementTimeoutError(BrowserError):
    """Raised when a selector does not reach the requested state in time."""

    def __init__(self, selector: str, timeout: float):
        super().__init__(f"Timed out after {timeout:g}s waiting for '{selector}'")
        self.selector = selector
        self.timeout = timeout


class SessionLostError(BrowserError):
    """Raised when the browser or its CDP session is gone."""

    pass


class SubmissionError(ImageFromImageError):
    """Base class for failures while submitting a single unit."""

    pass


class NotReadyError(SubmissionError):
    """Required UI elements never appeared. The unit is not retried."""

    pass


class GateTimeoutError(SubmissionError):
    """The submission gate never reopened. The only retryable failure."""

    pass


class InteractionError(SubmissionError):
    """Any other automation failure. Terminal for the unit."""

    pass
