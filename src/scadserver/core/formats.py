"""Export format table.

Each :class:`ExportFormat` has exactly one :class:`FormatSpec` entry in
:data:`FORMATS` describing how openscad is asked to produce it:

========== ========= =============== ========================================== =======
Format     Extension --export-format Content type                               Option
========== ========= =============== ========================================== =======
png        png                       image/png                                  png
stl_binary stl       binstl          application/octet-stream                   stl
stl_ascii  stl       asciistl        application/octet-stream                   stl
svg        svg                       image/svg+xml                              svg
pdf        pdf                       application/pdf                            pdf
3mf        3mf                       application/vnd.ms-package.3dmodel+xml     threemf
webp       png                       image/webp                                 png
avif       png                       image/avif                                 png
========== ========= =============== ========================================== =======

``webp`` and ``avif`` are derived formats: openscad renders a PNG and the
``encoder`` re-encodes it in-process.  Adding a format means adding one enum
member and one table entry (plus an option handler if it has its own bag).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from scadserver.core.errors import InvalidFormatError
from scadserver.core.image_convert import convert_png_to_avif, convert_png_to_webp

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ExportFormat(str, Enum):
    """Formats accepted by the export endpoint."""

    PNG = "png"
    STL_BINARY = "stl_binary"
    STL_ASCII = "stl_ascii"
    SVG = "svg"
    PDF = "pdf"
    THREEMF = "3mf"
    WEBP = "webp"
    AVIF = "avif"


# Alternate spellings accepted on input.
FORMAT_ALIASES: dict[str, ExportFormat] = {
    "threemf": ExportFormat.THREEMF,
}


@dataclass(frozen=True)
class FormatSpec:
    """How openscad produces one export format.

    Attributes:
        extension: Extension of the file openscad writes.
        export_format: Value for ``--export-format``, or ``""`` to let
            openscad infer it from the extension.
        content_type: MIME type of the bytes returned to the client.
        option_family: Key of the option bag in ``ExportOptions`` that
            applies to this format.
        encoder: Post-processing step applied to openscad's output, if any.
    """

    extension: str
    export_format: str
    content_type: str
    option_family: str
    encoder: Callable[[bytes], bytes] | None = None


FORMATS: dict[ExportFormat, FormatSpec] = {
    ExportFormat.PNG: FormatSpec("png", "", "image/png", "png"),
    ExportFormat.STL_BINARY: FormatSpec("stl", "binstl", DEFAULT_CONTENT_TYPE, "stl"),
    ExportFormat.STL_ASCII: FormatSpec("stl", "asciistl", DEFAULT_CONTENT_TYPE, "stl"),
    ExportFormat.SVG: FormatSpec("svg", "", "image/svg+xml", "svg"),
    ExportFormat.PDF: FormatSpec("pdf", "", "application/pdf", "pdf"),
    ExportFormat.THREEMF: FormatSpec(
        "3mf", "", "application/vnd.ms-package.3dmodel+xml", "threemf"
    ),
    ExportFormat.WEBP: FormatSpec("png", "", "image/webp", "png", convert_png_to_webp),
    ExportFormat.AVIF: FormatSpec("png", "", "image/avif", "png", convert_png_to_avif),
}


def parse_format(value: str | ExportFormat) -> ExportFormat:
    """Resolve a format string (or alias) to an :class:`ExportFormat`.

    Raises:
        InvalidFormatError: If *value* names no supported format.
    """
    if isinstance(value, ExportFormat):
        return value
    if value in FORMAT_ALIASES:
        return FORMAT_ALIASES[value]
    try:
        return ExportFormat(value)
    except ValueError:
        raise InvalidFormatError(value) from None


def validate_format(value: str) -> None:
    """Raise :class:`InvalidFormatError` unless *value* is an export format."""
    parse_format(value)


def is_native_format(fmt: ExportFormat) -> bool:
    """True when openscad writes *fmt* directly, without re-encoding."""
    return FORMATS[fmt].encoder is None


def get_output_extension(value: str | ExportFormat) -> tuple[str, str]:
    """Return ``(extension, export_format)`` for a format.

    Unknown formats yield ``("", "")``.
    """
    try:
        spec = FORMATS[parse_format(value)]
    except InvalidFormatError:
        return "", ""
    return spec.extension, spec.export_format


def get_content_type(value: str | ExportFormat) -> str:
    """Return the response content type for a format.

    Unknown formats fall back to ``application/octet-stream``.
    """
    try:
        return FORMATS[parse_format(value)].content_type
    except InvalidFormatError:
        return DEFAULT_CONTENT_TYPE
