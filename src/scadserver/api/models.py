"""Pydantic request and response models for the OpenSCAD HTTP API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for request validation, serialisation, and OpenAPI documentation.

Models
------
ExportRequest
    Payload for ``POST /openscad/v1/export`` — script, format and
    per-format options.
SummaryRequest
    Payload for ``POST /openscad/v1/summary`` — script and summary type.
SummaryResponse
    Body returned by a successful summary call.
ErrorResponse
    Body returned by every failed call.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from scadserver.core.options import ExportOptions

SummaryType = Literal["all", "cache", "time", "camera", "geometry", "bounding-box", "area"]


class ExportRequest(BaseModel):
    """Request body for the export endpoint.

    ``format`` is a plain string so that unsupported values reach the export
    service and are reported as ``export failed`` rather than a schema error.

    Attributes:
        scad_content: openscad script text (also accepted as ``content``).
        format: One of png, stl_binary, stl_ascii, svg, pdf, 3mf, webp, avif.
        options: Format-specific option bags.
    """

    model_config = ConfigDict(populate_by_name=True)

    scad_content: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("scad_content", "content"),
        description="openscad script to render.",
        examples=["cube([10,10,10]);"],
    )
    format: str = Field(
        ...,
        description="Export format: png, stl_binary, stl_ascii, svg, pdf, 3mf, webp or avif.",
        examples=["png"],
    )
    options: ExportOptions = Field(
        default_factory=ExportOptions,
        description="Per-format options; webp and avif use the png bag.",
    )


class SummaryRequest(BaseModel):
    """Request body for the summary endpoint.

    Attributes:
        scad_content: openscad script text (also accepted as ``content``).
        summary_type: Diagnostic category to report (also accepted as
            ``kind``).  Defaults to ``"all"``.
    """

    model_config = ConfigDict(populate_by_name=True)

    scad_content: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("scad_content", "content"),
        description="openscad script to analyse.",
        examples=["cube([10,10,10]);"],
    )
    summary_type: SummaryType = Field(
        default="all",
        validation_alias=AliasChoices("summary_type", "kind"),
        description="Summary category.",
    )


class SummaryResponse(BaseModel):
    """Successful summary body; the mapping's shape is defined by openscad."""

    summary: dict[str, Any]


class ErrorResponse(BaseModel):
    """Error body returned with every 4xx/5xx response."""

    error: str = Field(..., examples=["invalid request"])
    message: str = Field(default="", examples=["detailed error message"])
