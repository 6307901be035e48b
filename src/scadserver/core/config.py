"""Configuration management for the OpenSCAD HTTP server.

All configuration is loaded with Pydantic Settings from environment variables
carrying the ``SCADSRV_`` prefix, so deployments can be tuned without code
changes.

Environment Variable Loading
-----------------------------
Values are resolved in the following priority order:

1. Environment variables (``SCADSRV_*`` prefix)
2. ``.env`` file in the working directory
3. Default values defined in :class:`ScadServerConfig`

Example .env file::

    SCADSRV_PORT=8080
    SCADSRV_MODE=debug
    SCADSRV_TIMEOUT_SECONDS=120
    SCADSRV_OPENSCAD_BINARY=/usr/local/bin/openscad

Global Configuration Instance
------------------------------
A module-level ``config`` instance is created at import time and acts as the
single source of truth for the running server::

    from scadserver.core.config import config

    print(config.timeout_seconds)
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScadServerConfig(BaseSettings):
    """Main configuration for the OpenSCAD HTTP server.

    Attributes
    ----------
    OpenSCAD Settings:
        openscad_binary : str
            Executable invoked for every export and summary.
        timeout_seconds : float
            Wall-clock deadline for a single openscad invocation.
        temp_dir : Path | None
            Parent directory for per-request staging areas (system default
            when unset).
        openscad_debug : bool
            Pass ``--debug=all`` to openscad so its output carries trace logs.
        check_openscad_on_startup : bool
            Probe ``openscad --version`` during application start-up.

    Server Settings:
        server_host : str
            Bind address for uvicorn.
        server_port : int
            Bind port for uvicorn.
        mode : Literal["release", "debug"]
            Process mode; ``debug`` forces DEBUG logging.
        log_level : str
            Logging level used in release mode.

    Build Metadata:
        build_commit : str
            Source revision reported by ``GET /health``.
        build_tag : str
            Release tag reported by ``GET /health``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SCADSRV_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # OpenSCAD invocation
    openscad_binary: str = Field(
        default="openscad",
        description="Path or name of the openscad executable",
    )
    timeout_seconds: float = Field(
        default=300.0,
        description="Deadline for a single openscad invocation, in seconds",
        gt=0,
    )
    temp_dir: Path | None = Field(
        default=None,
        description="Parent directory for staging areas (system temp dir when unset)",
    )
    openscad_debug: bool = Field(
        default=False,
        description="Pass --debug=all to openscad",
    )
    check_openscad_on_startup: bool = Field(
        default=True,
        description="Fail start-up when the openscad binary cannot be run",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8000,
        description="Server port",
        ge=1,
        le=65535,
        # Aliases bypass env_prefix, so the prefixed names are spelled out.
        validation_alias=AliasChoices("scadsrv_port", "scadsrv_server_port"),
    )
    mode: Literal["release", "debug"] = Field(
        default="release",
        description="Process mode (debug enables verbose logging)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level used in release mode",
    )

    # Build metadata
    build_commit: str = Field(default="unknown", description="Source revision")
    build_tag: str = Field(default="unknown", description="Release tag")

    @property
    def effective_log_level(self) -> str:
        """Logging level after applying the process mode."""
        if self.mode == "debug":
            return "DEBUG"
        return self.log_level.upper()


# Global configuration instance, loaded from SCADSRV_* variables and .env.
config = ScadServerConfig()
