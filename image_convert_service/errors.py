"""Error taxonomy for the conversion service."""


class ServiceError(Exception):
    """
    Base class for errors that map onto an HTTP status.

    ``message`` is what the client sees. ``detail`` carries the server-side
    context that is logged but never returned.
    """

    status_code: int = 500

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(detail or message)
        self.message = message
        self.detail = detail


class InputError(ServiceError):
    """Bad or missing parameters, too many files, or a file that is too large."""

    status_code = 400


class ResourceExhausted(ServiceError):
    """Process memory is above the admission budget. Callers may retry later."""

    status_code = 503


class ConversionError(ServiceError):
    """A file in the batch failed to decode, encode or pack."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__("Image conversion failed", detail)
