"""Export and summary orchestration on top of the openscad executable.

:class:`OpenSCADService` is the single entry point used by the HTTP layer:

- :meth:`~OpenSCADService.export` renders a script into one of the
  :class:`~scadserver.core.formats.ExportFormat` values and returns the bytes
  together with their content type.  ``webp`` and ``avif`` are rendered as
  PNG and re-encoded in-process.
- :meth:`~OpenSCADService.summary` runs openscad's diagnostic summary mode
  and returns the parsed JSON object.

Usage
-----
::

    from scadserver.core.config import config
    from scadserver.core.openscad import OpenSCADService

    service = OpenSCADService.from_config(config)
    data, content_type = service.export("cube([10,10,10]);", "png")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from scadserver.core.config import ScadServerConfig
from scadserver.core.errors import ParseError
from scadserver.core.formats import FORMATS, ExportFormat, parse_format
from scadserver.core.options import ExportOptions, build_export_options
from scadserver.core.runner import ProcessRunner

logger = logging.getLogger(__name__)

SUMMARY_TYPES = ("all", "cache", "time", "camera", "geometry", "bounding-box", "area")
DEFAULT_SUMMARY_TYPE = "all"

SUMMARY_FILENAME = "summary.json"
# Summary mode still needs a primary output target; this one is discarded.
SUMMARY_DUMMY_OUTPUT = "dummy.stl"


class OpenSCADService:
    """Export and summary operations backed by a :class:`ProcessRunner`."""

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        self.runner = runner or ProcessRunner()

    @classmethod
    def from_config(cls, config: ScadServerConfig) -> OpenSCADService:
        """Build a service whose runner follows *config*."""
        return cls(
            ProcessRunner(
                binary=config.openscad_binary,
                timeout=config.timeout_seconds,
                debug=config.openscad_debug,
                base_dir=config.temp_dir,
            )
        )

    def export(
        self,
        content: str,
        format: str | ExportFormat,
        options: ExportOptions | None = None,
    ) -> tuple[bytes, str]:
        """Render *content* in *format*.

        Args:
            content: openscad script text.
            format: Requested export format (``"threemf"`` is accepted for
                ``"3mf"``).
            options: Per-format option bags; only the bag for *format* is
                used.

        Returns:
            Tuple of ``(data, content_type)``.

        Raises:
            InvalidFormatError: Before any filesystem or process work when
                *format* is unsupported.
            ScadServerError: Any staging, process, read or re-encode failure.
        """
        logger.info("Export request: format=%s", format)
        fmt = parse_format(format)
        spec = FORMATS[fmt]

        format_flags = build_export_options(fmt, options)
        logger.debug("Format-specific options: %s", format_flags)

        def build_flags(staging: Path) -> list[str]:
            flags: list[str] = []
            if spec.export_format:
                flags.extend(["--export-format", spec.export_format])
            flags.extend(format_flags)
            return flags

        data = self.runner.stage_and_run(
            content,
            f"output.{spec.extension}",
            build_flags,
            prefix="scad-export-",
        )
        logger.info("Rendered %s output (%d bytes)", spec.extension, len(data))

        if spec.encoder is not None:
            data = spec.encoder(data)

        return data, spec.content_type

    def summary(self, content: str, summary_type: str | None = None) -> dict[str, Any]:
        """Run openscad's summary mode on *content*.

        Args:
            content: openscad script text.
            summary_type: One of :data:`SUMMARY_TYPES`; defaults to ``"all"``.

        Returns:
            The parsed summary, a mapping of diagnostic category to value.
            Its shape depends on the openscad version and *summary_type*.

        Raises:
            ParseError: If the summary file is not a JSON object.
            ScadServerError: Any staging, process or read failure.
        """
        summary_type = summary_type or DEFAULT_SUMMARY_TYPE
        logger.info("Summary request: type=%s", summary_type)

        def build_flags(staging: Path) -> list[str]:
            return [
                "--summary",
                summary_type,
                "--summary-file",
                str(staging / SUMMARY_FILENAME),
            ]

        data = self.runner.stage_and_run(
            content,
            SUMMARY_DUMMY_OUTPUT,
            build_flags,
            artifact_name=SUMMARY_FILENAME,
            prefix="scad-summary-",
        )

        try:
            summary = json.loads(data)
        except ValueError as exc:
            raise ParseError(f"failed to parse summary JSON: {exc}") from exc
        if not isinstance(summary, dict):
            raise ParseError(
                f"failed to parse summary JSON: expected an object, got {type(summary).__name__}"
            )
        return summary

    def check_available(self) -> str:
        """Verify that the openscad binary runs and return its version text.

        Raises:
            ScadServerError: If ``openscad --version`` cannot be run.
        """
        version = self.runner.version()
        logger.info("Using %s", version or self.runner.binary)
        return version
