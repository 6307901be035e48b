"""Shared pytest fixtures for scad-server tests.

The real openscad binary is never required: :func:`fake_openscad` writes a
small Python script that understands the flags the service passes and writes
plausible artifacts.  Its behaviour is switched with the
``FAKE_OPENSCAD_MODE`` environment variable:

============  ==============================================================
Mode          Behaviour
============  ==============================================================
ok            Write the requested output (a real PNG for ``.png`` outputs)
fail          Print a parser error to stderr and exit 1
sleep         Sleep for 30 seconds (exercises the deadline)
no_output     Exit 0 without writing anything
bad_png       Write non-PNG bytes to a ``.png`` output
bad_summary   Write invalid JSON to the summary file
no_summary    Exit 0 in summary mode without writing the summary file
============  ==============================================================

When ``FAKE_OPENSCAD_LOG`` is set, each invocation appends its arguments and
working directory as one JSON line.
"""

import io
import json
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from scadserver.api.main import app, get_openscad_service
from scadserver.core.config import ScadServerConfig
from scadserver.core.openscad import OpenSCADService

FAKE_OPENSCAD = '''#!@PYTHON@
"""Stand-in for the openscad executable."""
import json
import os
import sys
import time
from pathlib import Path

args = sys.argv[1:]
mode = os.environ.get("FAKE_OPENSCAD_MODE", "ok")

log_path = os.environ.get("FAKE_OPENSCAD_LOG")
if log_path:
    with open(log_path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps({"args": args, "cwd": os.getcwd()}) + "\\n")

if "--version" in args:
    print("OpenSCAD version 2021.01")
    sys.exit(0)

if mode == "fail":
    print("ERROR: Parser error in file input.scad, line 1", file=sys.stderr)
    sys.exit(1)

if mode == "sleep":
    time.sleep(30)
    sys.exit(0)


def value_after(flag, default=None):
    if flag in args:
        return args[args.index(flag) + 1]
    return default


output = Path(value_after("-o"))
summary_file = value_after("--summary-file")

if summary_file:
    if mode == "no_summary":
        pass
    elif mode == "bad_summary":
        Path(summary_file).write_text("not json")
    else:
        sections = {
            "cache": {"geometry_cache_size": 0},
            "time": {"total": 0.01},
            "camera": {"distance": 140.0},
            "geometry": {"dimensions": 3, "convex": True, "facets": 6},
            "bounding-box": {"min": [0, 0, 0], "max": [10, 10, 10]},
            "area": {"area": 600.0},
        }
        kind = value_after("--summary", "all")
        payload = sections if kind == "all" else {kind: sections[kind]}
        Path(summary_file).write_text(json.dumps(payload))
    output.write_text("solid dummy\\nendsolid dummy\\n")
    sys.exit(0)

if mode == "no_output":
    sys.exit(0)

if output.suffix == ".png":
    if mode == "bad_png":
        output.write_bytes(b"not a png")
    else:
        from PIL import Image

        width, height = (int(v) for v in value_after("--imgsize", "32,24").split(","))
        Image.new("RGB", (width, height), (249, 215, 44)).save(output, format="PNG")
else:
    output.write_text("fake %s export of %s" % (output.suffix, Path(args[-1]).name))
'''


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def fake_mode_reset(monkeypatch):
    """Start every test with the fake openscad in ``ok`` mode."""
    monkeypatch.delenv("FAKE_OPENSCAD_MODE", raising=False)
    monkeypatch.delenv("FAKE_OPENSCAD_LOG", raising=False)


@pytest.fixture
def fake_openscad(temp_dir: Path) -> Path:
    """Write the fake openscad executable.

    Returns:
        Path to the executable script
    """
    script = temp_dir / "bin" / "openscad"
    script.parent.mkdir()
    script.write_text(FAKE_OPENSCAD.replace("@PYTHON@", sys.executable))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def openscad_calls(temp_dir: Path, monkeypatch):
    """Record fake openscad invocations.

    Returns:
        Callable returning the list of ``{"args", "cwd"}`` records so far
    """
    log_path = temp_dir / "openscad_calls.jsonl"
    monkeypatch.setenv("FAKE_OPENSCAD_LOG", str(log_path))

    def read_calls() -> list[dict]:
        if not log_path.exists():
            return []
        return [json.loads(line) for line in log_path.read_text().splitlines()]

    return read_calls


@pytest.fixture
def staging_root(temp_dir: Path) -> Path:
    """Parent directory for staging areas, so cleanup can be asserted."""
    root = temp_dir / "staging"
    root.mkdir()
    return root


@pytest.fixture
def test_config(fake_openscad: Path, staging_root: Path) -> ScadServerConfig:
    """Create a test configuration pointing at the fake openscad.

    Returns:
        ScadServerConfig instance for testing
    """
    return ScadServerConfig(
        _env_file=None,
        openscad_binary=str(fake_openscad),
        timeout_seconds=30,
        temp_dir=staging_root,
        check_openscad_on_startup=False,
    )


@pytest.fixture
def service(test_config: ScadServerConfig) -> OpenSCADService:
    """OpenSCADService wired to the fake openscad."""
    return OpenSCADService.from_config(test_config)


@pytest.fixture
def test_client(service: OpenSCADService) -> Generator[TestClient, None, None]:
    """TestClient with the OpenSCAD service dependency overridden."""
    app.dependency_overrides[get_openscad_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def png_bytes() -> bytes:
    """A small, valid RGB PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), (255, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()
