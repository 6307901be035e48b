"""Staging and execution of the openscad subprocess.

Every export or summary call gets its own staging directory holding the
input script and whatever openscad writes.  The directory is the child's
working directory, so relative-path side effects stay inside it, and it is
removed on every exit path, including timeouts.

Invocation Layout
-----------------
Arguments are assembled in a fixed order because openscad is order-sensitive
for some flags::

    openscad [--debug=all] -o <output> <format flags...> <input.scad>

Failure Classification
----------------------
==================================  =========================================
Condition                           Raised
==================================  =========================================
staging dir / input write fails     :class:`StagingError`
executable cannot be started        :class:`ProcessFailedError`
deadline expires (child is killed)  :class:`DeadlineExceededError`
non-zero exit status                :class:`ProcessFailedError`
exit 0 but artifact missing         :class:`ReadFailedError`
==================================  =========================================
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from scadserver.core.errors import (
    DeadlineExceededError,
    ProcessFailedError,
    ReadFailedError,
    StagingError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
INPUT_FILENAME = "input.scad"

FlagBuilder = Callable[[Path], Sequence[str]]


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one openscad invocation.

    Attributes:
        exit_code: Process exit status, ``None`` if the deadline expired.
        output: Combined stdout and stderr, decoded leniently.
        timed_out: Whether the process was killed at the deadline.
    """

    exit_code: int | None
    output: str
    timed_out: bool = False


@contextmanager
def staging_area(prefix: str = "scad-", base_dir: Path | None = None) -> Iterator[Path]:
    """Create a uniquely named temporary directory and remove it on exit.

    Removal failures are logged and never replace the error (or result) of
    the body.

    Args:
        prefix: Directory name prefix.
        base_dir: Parent directory, or ``None`` for the system default.

    Yields:
        Path of the new, empty directory.

    Raises:
        StagingError: If the directory cannot be created.
    """
    try:
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))
    except OSError as exc:
        raise StagingError(f"failed to create temp directory: {exc}") from exc
    logger.debug("Created staging area: %s", path)

    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("Failed to remove temp directory %s: %s", path, exc)


def _decode_output(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class ProcessRunner:
    """Runs openscad with a hard deadline inside per-call staging areas.

    Attributes:
        binary: openscad executable name or path.
        timeout: Deadline in seconds for each invocation.
        debug: Prepend ``--debug=all`` to every staged invocation.
        base_dir: Parent directory for staging areas.
    """

    def __init__(
        self,
        binary: str = "openscad",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        debug: bool = False,
        base_dir: Path | None = None,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.debug = debug
        self.base_dir = base_dir

    def run(self, args: Sequence[str], cwd: Path | None = None) -> ExecutionResult:
        """Run openscad once and capture its combined output.

        On deadline expiry the child is killed and the result is flagged as
        timed out; no exception is raised for non-zero exits here.

        Args:
            args: Arguments following the executable name.
            cwd: Working directory for the child.

        Returns:
            The :class:`ExecutionResult` of the invocation.

        Raises:
            ProcessFailedError: If the executable cannot be started.
        """
        command = [self.binary, *args]
        logger.debug("Running command: %s (cwd: %s)", command, cwd)

        try:
            proc = subprocess.run(
                command,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            # subprocess.run has already killed and reaped the child.
            logger.error("Command timed out after %gs: %s", self.timeout, command)
            return ExecutionResult(exit_code=None, output=_decode_output(exc.output), timed_out=True)
        except OSError as exc:
            logger.error("Failed to start %s: %s", self.binary, exc)
            raise ProcessFailedError(f"openscad command failed: {exc}") from exc

        output = _decode_output(proc.stdout)
        logger.debug("Combined output (exit code %d):\n%s", proc.returncode, output)
        return ExecutionResult(exit_code=proc.returncode, output=output)

    def check(self, result: ExecutionResult) -> None:
        """Raise the error matching a failed :class:`ExecutionResult`.

        Raises:
            DeadlineExceededError: If the run timed out.
            ProcessFailedError: If the run exited non-zero.
        """
        if result.timed_out:
            raise DeadlineExceededError(self.timeout)
        if result.exit_code != 0:
            logger.error("openscad exited with status %s", result.exit_code)
            raise ProcessFailedError(
                f"openscad command failed: exit status {result.exit_code}",
                exit_code=result.exit_code,
                output=result.output,
            )

    def stage_and_run(
        self,
        content: str,
        output_name: str,
        build_flags: FlagBuilder | None = None,
        *,
        artifact_name: str | None = None,
        prefix: str = "scad-",
    ) -> bytes:
        """Stage *content*, run openscad on it and return the artifact bytes.

        Args:
            content: openscad script text, written verbatim to ``input.scad``.
            output_name: File name passed to ``-o`` inside the staging area.
            build_flags: Called with the staging directory; returns the flags
                placed between the output path and the input file.
            artifact_name: File to read back, defaulting to *output_name*.
            prefix: Staging directory name prefix.

        Returns:
            Contents of the artifact file.

        Raises:
            StagingError: If staging fails.
            ProcessFailedError: If openscad cannot start or exits non-zero.
            DeadlineExceededError: If openscad exceeds the deadline.
            ReadFailedError: If the artifact is missing or unreadable.
        """
        with staging_area(prefix=prefix, base_dir=self.base_dir) as staging:
            input_path = staging / INPUT_FILENAME
            try:
                input_path.write_bytes(content.encode("utf-8"))
            except OSError as exc:
                raise StagingError(f"failed to write SCAD file: {exc}") from exc

            output_path = staging / output_name
            args: list[str] = ["--debug=all"] if self.debug else []
            args.extend(["-o", str(output_path)])
            if build_flags is not None:
                args.extend(build_flags(staging))
            args.append(str(input_path))

            self.check(self.run(args, cwd=staging))

            artifact_path = staging / (artifact_name or output_name)
            try:
                data = artifact_path.read_bytes()
            except OSError as exc:
                logger.error("Failed to read output file %s: %s", artifact_path, exc)
                raise ReadFailedError(f"failed to read output file: {exc}") from exc

            logger.debug("Read %s (%d bytes)", artifact_path.name, len(data))
            return data

    def version(self) -> str:
        """Return the output of ``openscad --version``.

        Raises:
            ProcessFailedError: If the binary is missing or exits non-zero.
            DeadlineExceededError: If the probe exceeds the deadline.
        """
        result = self.run(["--version"])
        self.check(result)
        return result.output.strip()
