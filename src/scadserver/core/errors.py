"""Error taxonomy for export and summary operations.

Every failure raised by the core derives from :class:`ScadServerError`.
Route handlers catch the base class and translate it into the
``{"error": ..., "message": ...}`` response body; only
:class:`InvalidFormatError` maps to a client error.
"""


class ScadServerError(Exception):
    """Base class for all export and summary failures."""


class InvalidFormatError(ScadServerError):
    """The requested export format is not supported."""

    def __init__(self, format_name: str) -> None:
        super().__init__(f"unsupported format: {format_name}")
        self.format_name = format_name


class StagingError(ScadServerError):
    """The staging directory or input file could not be created."""


class DeadlineExceededError(ScadServerError):
    """openscad did not finish before the configured deadline."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"openscad command timed out after {timeout:g}s")
        self.timeout = timeout


class ProcessFailedError(ScadServerError):
    """openscad could not be started or exited with a non-zero status.

    Attributes:
        exit_code: Process exit status, or ``None`` when spawning failed.
        output: Combined stdout/stderr text captured from the process.
    """

    def __init__(self, message: str, *, exit_code: int | None = None, output: str = "") -> None:
        if output:
            message = f"{message}, output: {output}"
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


class ReadFailedError(ScadServerError):
    """openscad reported success but the expected artifact is missing."""


class DecodeError(ScadServerError):
    """Input bytes are not a decodable PNG image."""


class EncodeError(ScadServerError):
    """The target codec rejected the decoded image."""


class ParseError(ScadServerError):
    """The summary file is not a valid JSON object."""
