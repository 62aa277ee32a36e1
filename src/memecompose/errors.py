"""Error types raised by memecompose.

Validation errors are user-correctable and raised before any engine run.
Engine errors carry ffmpeg's diagnostics verbatim. Filesystem problems are
left as OSError.
"""


class MemeComposeError(Exception):
    """Base class for memecompose errors."""


class ValidationError(MemeComposeError, ValueError):
    """Invalid composition parameters or missing inputs."""


class EngineError(MemeComposeError, RuntimeError):
    """ffmpeg failed or produced no usable output."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class UploadTooLargeError(ValidationError):
    """An uploaded file exceeded the configured size limit."""
