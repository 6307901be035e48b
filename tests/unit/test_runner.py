"""Tests for scadserver.core.runner — staging areas and process execution.

All tests run against the fake openscad from ``conftest.py``.  Tests cover:

- Staging area creation and removal on success and failure.
- Argument order and working directory of the child process.
- Classification of non-zero exits, spawn failures, timeouts and missing
  artifacts.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from scadserver.core.errors import (
    DeadlineExceededError,
    ProcessFailedError,
    ReadFailedError,
    StagingError,
)
from scadserver.core.runner import INPUT_FILENAME, ExecutionResult, ProcessRunner, staging_area


@pytest.fixture
def runner(fake_openscad: Path, staging_root: Path) -> ProcessRunner:
    return ProcessRunner(str(fake_openscad), timeout=30, base_dir=staging_root)


class TestStagingArea:
    """Test the staging_area context manager."""

    def test_directory_created_and_removed(self, staging_root):
        with staging_area(base_dir=staging_root) as path:
            assert path.is_dir()
            assert path.parent == staging_root
            (path / "file.txt").write_text("data")
        assert not path.exists()

    def test_removed_when_body_raises(self, staging_root):
        with pytest.raises(RuntimeError):
            with staging_area(base_dir=staging_root) as path:
                raise RuntimeError("boom")
        assert not path.exists()

    def test_unique_names(self, staging_root):
        with staging_area(base_dir=staging_root) as first:
            with staging_area(base_dir=staging_root) as second:
                assert first != second

    def test_prefix(self, staging_root):
        with staging_area(prefix="scad-export-", base_dir=staging_root) as path:
            assert path.name.startswith("scad-export-")

    def test_missing_base_dir_raises_staging_error(self, temp_dir):
        with pytest.raises(StagingError, match="failed to create temp directory"):
            with staging_area(base_dir=temp_dir / "does-not-exist"):
                pass

    def test_cleanup_failure_is_logged_not_raised(self, staging_root, monkeypatch, caplog):
        def fail_rmtree(path):
            raise OSError("permission denied")

        with monkeypatch.context() as patch:
            patch.setattr("scadserver.core.runner.shutil.rmtree", fail_rmtree)
            with staging_area(base_dir=staging_root) as path:
                pass
        assert path.exists()
        assert "Failed to remove temp directory" in caplog.text


class TestRun:
    """Test ProcessRunner.run and ProcessRunner.check."""

    def test_version(self, runner):
        assert runner.version() == "OpenSCAD version 2021.01"

    def test_combined_output_captured(self, runner, monkeypatch, temp_dir):
        monkeypatch.setenv("FAKE_OPENSCAD_MODE", "fail")
        result = runner.run(["-o", str(temp_dir / "out.stl"), "in.scad"], cwd=temp_dir)
        assert result.exit_code == 1
        assert result.timed_out is False
        assert "Parser error" in result.output

    def test_check_non_zero_exit(self, runner):
        with pytest.raises(ProcessFailedError) as exc_info:
            runner.check(ExecutionResult(exit_code=2, output="ERROR: boom"))
        assert exc_info.value.exit_code == 2
        assert exc_info.value.output == "ERROR: boom"
        assert "ERROR: boom" in str(exc_info.value)

    def test_check_timed_out(self, runner):
        with pytest.raises(DeadlineExceededError, match="timed out"):
            runner.check(ExecutionResult(exit_code=None, output="", timed_out=True))

    def test_check_success(self, runner):
        runner.check(ExecutionResult(exit_code=0, output=""))

    def test_missing_binary(self, staging_root, temp_dir):
        runner = ProcessRunner(str(temp_dir / "no-such-openscad"), base_dir=staging_root)
        with pytest.raises(ProcessFailedError) as exc_info:
            runner.run(["--version"])
        assert exc_info.value.exit_code is None


class TestStageAndRun:
    """Test ProcessRunner.stage_and_run."""

    def test_argument_order(self, runner, openscad_calls):
        """Output flag first, then format flags, then the input file last."""
        runner.stage_and_run(
            "cube(1);", "output.png", lambda staging: ["--imgsize", "64,48"]
        )
        (call,) = openscad_calls()
        args = call["args"]
        assert args[0] == "-o"
        assert Path(args[1]).name == "output.png"
        assert args[2:4] == ["--imgsize", "64,48"]
        assert Path(args[-1]).name == INPUT_FILENAME

    def test_working_directory_is_staging_area(self, runner, openscad_calls, staging_root):
        runner.stage_and_run("cube(1);", "output.svg")
        (call,) = openscad_calls()
        assert Path(call["cwd"]).parent == staging_root
        assert Path(call["args"][1]).parent == Path(call["cwd"])

    def test_debug_flag_prepended(self, fake_openscad, staging_root, openscad_calls):
        runner = ProcessRunner(str(fake_openscad), timeout=30, debug=True, base_dir=staging_root)
        runner.stage_and_run("cube(1);", "output.stl")
        (call,) = openscad_calls()
        assert call["args"][:2] == ["--debug=all", "-o"]

    def test_returns_artifact_bytes(self, runner):
        data = runner.stage_and_run("cube(1);", "output.svg")
        assert data == b"fake .svg export of input.scad"

    def test_content_written_verbatim(self, fake_openscad, staging_root):
        """The staged input file should hold exactly the request content."""
        seen: dict[str, bytes] = {}
        runner = ProcessRunner(str(fake_openscad), timeout=30, base_dir=staging_root)

        def build_flags(staging: Path) -> list[str]:
            seen["input"] = (staging / INPUT_FILENAME).read_bytes()
            return []

        content = "// ünïcode\r\ncube([10,10,10]);\n"
        runner.stage_and_run(content, "output.stl", build_flags)
        assert seen["input"] == content.encode("utf-8")

    def test_input_write_failure(self, runner, openscad_calls, staging_root, monkeypatch):
        def fail_write_bytes(self, data):
            raise OSError("disk full")

        with monkeypatch.context() as patch:
            patch.setattr(Path, "write_bytes", fail_write_bytes)
            with pytest.raises(StagingError, match="failed to write SCAD file"):
                runner.stage_and_run("cube(1);", "output.stl")
        assert openscad_calls() == []
        assert list(staging_root.iterdir()) == []

    def test_staging_removed_on_success(self, runner, staging_root):
        runner.stage_and_run("cube(1);", "output.stl")
        assert list(staging_root.iterdir()) == []

    def test_process_failure(self, runner, monkeypatch, staging_root):
        monkeypatch.setenv("FAKE_OPENSCAD_MODE", "fail")
        with pytest.raises(ProcessFailedError) as exc_info:
            runner.stage_and_run("cube(", "output.stl")
        assert "Parser error" in exc_info.value.output
        assert list(staging_root.iterdir()) == []

    def test_missing_artifact(self, runner, monkeypatch, staging_root):
        """Exit status 0 without an output file must not count as success."""
        monkeypatch.setenv("FAKE_OPENSCAD_MODE", "no_output")
        with pytest.raises(ReadFailedError, match="failed to read output file"):
            runner.stage_and_run("cube(1);", "output.stl")
        assert list(staging_root.iterdir()) == []

    def test_timeout_kills_and_cleans_up(self, fake_openscad, staging_root, monkeypatch):
        monkeypatch.setenv("FAKE_OPENSCAD_MODE", "sleep")
        runner = ProcessRunner(str(fake_openscad), timeout=0.5, base_dir=staging_root)
        with pytest.raises(DeadlineExceededError) as exc_info:
            runner.stage_and_run("cube(1);", "output.stl")
        assert exc_info.value.timeout == 0.5
        assert list(staging_root.iterdir()) == []

    def test_artifact_name_overrides_output(self, runner):
        """Summary-style runs read a file other than the -o target."""
        data = runner.stage_and_run(
            "cube(1);",
            "dummy.stl",
            lambda staging: ["--summary", "area", "--summary-file", str(staging / "s.json")],
            artifact_name="s.json",
        )
        assert b'"area"' in data
