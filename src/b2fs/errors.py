"""Error definitions for b2fs."""


class B2FSError(Exception):
    """A b2fs error with code, message, and the originating HTTP status.

    Attributes:
        code: Short error code string (e.g. "not_found", "transport_error").
        message: Human-readable error description.
        http_status: HTTP status returned by the store, or 0 when the error
            did not come from an HTTP response.
        extra_fields: Additional context (key, file id, part number...).
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 0,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 0).
            extra_fields: Optional extra context fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra_fields = extra_fields or {}


# -- Common pre-defined errors ------------------------------------------------


class NotFound(B2FSError):
    """A lookup or search yielded nothing."""

    def __init__(self, key: str = "", http_status: int = 404) -> None:
        super().__init__(
            code="not_found",
            message=f"No such file: {key}" if key else "No such file.",
            http_status=http_status,
            extra_fields={"Key": key} if key else {},
        )


class SizeUnknown(B2FSError):
    """The length of a stream could not be determined before writing it."""

    def __init__(self, key: str = "") -> None:
        super().__init__(
            code="size_unknown",
            message="Stream length must be known before a streamed write.",
            extra_fields={"Key": key} if key else {},
        )


class TransportError(B2FSError):
    """The underlying store call failed (network, auth, quota...)."""

    def __init__(
        self,
        message: str = "Store request failed",
        http_status: int = 0,
        code: str = "transport_error",
    ) -> None:
        super().__init__(code=code, message=message, http_status=http_status)


class HashMismatch(B2FSError):
    """The store rejected data or a finalize because SHA-1 hashes disagree."""

    def __init__(self, message: str = "Part SHA-1 list does not match the uploaded parts.") -> None:
        super().__init__(code="hash_mismatch", message=message, http_status=400)


class InvalidState(B2FSError):
    """An operation was requested in a state that cannot satisfy it."""

    def __init__(self, message: str = "Invalid state") -> None:
        super().__init__(code="invalid_state", message=message)


class UploadCancelled(B2FSError):
    """A large-file upload was cancelled before it was finalized."""

    def __init__(self, file_id: str = "") -> None:
        super().__init__(
            code="upload_cancelled",
            message="Upload cancelled; the unfinished large file is left to expire.",
            extra_fields={"FileId": file_id} if file_id else {},
        )


# B2 error codes that mean the addressed file does not exist.
_NOT_FOUND_CODES = frozenset({"not_found", "file_not_present", "no_such_file"})


def error_from_response(status: int, body: dict | None, key: str = "") -> B2FSError:
    """Map a non-2xx B2 response to a b2fs error.

    B2 error bodies look like ``{"status": 400, "code": "bad_request",
    "message": "..."}``.

    Args:
        status: HTTP status code of the response.
        body: Decoded JSON error body, if any.
        key: Object key the request addressed, for the error message.

    Returns:
        The matching B2FSError subclass instance.
    """
    body = body or {}
    code = str(body.get("code", ""))
    message = str(body.get("message", "")) or f"HTTP {status}"

    if status == 404 or code in _NOT_FOUND_CODES:
        return NotFound(key, http_status=status)
    if code == "bad_request" and "sha1" in message.lower():
        return HashMismatch(message)
    return TransportError(message, http_status=status, code=code or "transport_error")
