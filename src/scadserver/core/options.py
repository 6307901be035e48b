"""Per-format export options and their translation to openscad arguments.

Each option bag is a Pydantic model whose fields are all optional; an absent
field means "let openscad use its default".  :func:`build_export_options`
turns the bag that applies to a format into an ordered list of command-line
tokens.  Translation never fails: out-of-range precision values are dropped
silently, matching openscad's own tolerance for unknown ``-O`` keys.

Token reference
---------------
=========== ======================================================
Family      Tokens
=========== ======================================================
png         ``--imgsize W,H``
stl         ``-O export-stl/decimal-precision=N``
svg         ``-O export-svg/<key>=<value>`` (5 keys)
pdf         ``-O export-pdf/<key>=<value>`` (9 keys)
threemf     ``-O export-3mf/<key>=<value>`` (10 keys)
=========== ======================================================
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from scadserver.core.errors import InvalidFormatError
from scadserver.core.formats import FORMATS, ExportFormat, parse_format

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_WIDTH = 800
DEFAULT_IMAGE_HEIGHT = 600
MIN_DECIMAL_PRECISION = 1
MAX_DECIMAL_PRECISION = 16


# ---------------------------------------------------------------------------
# Option bags.
# ---------------------------------------------------------------------------


class PngOptions(BaseModel):
    """PNG image size.  Also applies to ``webp`` and ``avif`` exports."""

    width: int | None = Field(default=None, description="Image width in pixels.", examples=[800])
    height: int | None = Field(default=None, description="Image height in pixels.", examples=[600])


class StlOptions(BaseModel):
    """STL export options (binary and ASCII)."""

    decimal_precision: int | None = Field(
        default=None,
        description="Decimal digits written per coordinate (1-16).",
        examples=[6],
    )


class SvgOptions(BaseModel):
    """SVG export options."""

    fill: bool | None = Field(default=None, examples=[False])
    fill_color: str | None = Field(default=None, examples=["white"])
    stroke: bool | None = Field(default=None, examples=[True])
    stroke_color: str | None = Field(default=None, examples=["black"])
    stroke_width: float | None = Field(default=None, allow_inf_nan=False, examples=[0.35])


class PdfOptions(BaseModel):
    """PDF export options."""

    paper_size: str | None = Field(
        default=None,
        description="One of a6, a5, a4, a3, letter, legal, tabloid.",
        examples=["a4"],
    )
    orientation: str | None = Field(
        default=None,
        description="One of portrait, landscape, auto.",
        examples=["portrait"],
    )
    show_grid: bool | None = Field(default=None, examples=[False])
    grid_size: float | None = Field(default=None, allow_inf_nan=False, examples=[10])
    fill: bool | None = Field(default=None, examples=[False])
    fill_color: str | None = Field(default=None, examples=["black"])
    stroke: bool | None = Field(default=None, examples=[True])
    stroke_color: str | None = Field(default=None, examples=["black"])
    stroke_width: float | None = Field(default=None, allow_inf_nan=False, examples=[0.35])


class ThreeMfOptions(BaseModel):
    """3MF export options."""

    unit: str | None = Field(
        default=None,
        description="One of micron, millimeter, centimeter, meter, inch, foot.",
        examples=["millimeter"],
    )
    decimal_precision: int | None = Field(
        default=None,
        description="Decimal digits written per coordinate (1-16).",
        examples=[6],
    )
    color: str | None = Field(default=None, examples=["#f9d72c"])
    color_mode: str | None = Field(
        default=None,
        description="One of model, none, selected-only.",
        examples=["model"],
    )
    material_type: str | None = Field(
        default=None,
        description="One of color, basematerial.",
        examples=["color"],
    )
    add_metadata: bool | None = Field(default=None, examples=[True])
    metadata_title: str | None = Field(default=None, examples=["My Model"])
    metadata_designer: str | None = Field(default=None, examples=["Designer Name"])
    metadata_description: str | None = Field(default=None, examples=["Model description"])
    metadata_copyright: str | None = Field(default=None, examples=["Copyright info"])


class ExportOptions(BaseModel):
    """Option bags keyed by format family.

    The 3MF bag is serialised as ``"3mf"`` and also accepted as ``"threemf"``.
    """

    model_config = ConfigDict(populate_by_name=True)

    png: PngOptions | None = None
    stl: StlOptions | None = None
    svg: SvgOptions | None = None
    pdf: PdfOptions | None = None
    threemf: ThreeMfOptions | None = Field(
        default=None,
        validation_alias=AliasChoices("3mf", "threemf"),
        serialization_alias="3mf",
    )


# ---------------------------------------------------------------------------
# Value formatting.
# ---------------------------------------------------------------------------


def format_float(value: float) -> str:
    """Format *value* as the shortest round-trip decimal, never exponential.

    >>> format_float(0.35), format_float(10.0), format_float(1e-05)
    ('0.35', '10', '0.00001')
    """
    return format(Decimal(repr(float(value))).normalize(), "f")


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_float(value)
    return str(value)


def _precision_in_range(value: int) -> bool:
    return MIN_DECIMAL_PRECISION <= value <= MAX_DECIMAL_PRECISION


def _override_tokens(
    section: str,
    bag: BaseModel,
    fields: tuple[tuple[str, str], ...],
) -> list[str]:
    """Emit ``-O section/key=value`` for every populated field, in table order."""
    args: list[str] = []
    for attr, key in fields:
        value = getattr(bag, attr)
        if value is None:
            continue
        if attr == "decimal_precision" and not _precision_in_range(value):
            logger.debug("Dropping out-of-range %s/%s=%s", section, key, value)
            continue
        args.extend(["-O", f"{section}/{key}={_format_value(value)}"])
    return args


# ---------------------------------------------------------------------------
# Per-family builders.
# ---------------------------------------------------------------------------

OptionBuilder = Callable[[Any], list[str]]

_OPTION_BUILDERS: dict[str, OptionBuilder] = {}


def _option_builder(family: str) -> Callable[[OptionBuilder], OptionBuilder]:
    """Register the decorated function as the builder for *family*."""

    def register(builder: OptionBuilder) -> OptionBuilder:
        _OPTION_BUILDERS[family] = builder
        return builder

    return register


@_option_builder("png")
def _png_args(bag: PngOptions) -> list[str]:
    if bag.width is None and bag.height is None:
        return []
    width = bag.width if bag.width is not None else DEFAULT_IMAGE_WIDTH
    height = bag.height if bag.height is not None else DEFAULT_IMAGE_HEIGHT
    return ["--imgsize", f"{width},{height}"]


@_option_builder("stl")
def _stl_args(bag: StlOptions) -> list[str]:
    return _override_tokens(
        "export-stl",
        bag,
        (("decimal_precision", "decimal-precision"),),
    )


_SVG_FIELDS = (
    ("fill", "fill"),
    ("fill_color", "fill-color"),
    ("stroke", "stroke"),
    ("stroke_color", "stroke-color"),
    ("stroke_width", "stroke-width"),
)

_PDF_FIELDS = (
    ("paper_size", "paper-size"),
    ("orientation", "orientation"),
    ("show_grid", "show-grid"),
    ("grid_size", "grid-size"),
    ("fill", "fill"),
    ("fill_color", "fill-color"),
    ("stroke", "stroke"),
    ("stroke_color", "stroke-color"),
    ("stroke_width", "stroke-width"),
)

_THREEMF_FIELDS = (
    ("unit", "unit"),
    ("decimal_precision", "decimal-precision"),
    ("color", "color"),
    ("color_mode", "color-mode"),
    ("material_type", "material-type"),
    ("add_metadata", "add-meta-data"),
    ("metadata_title", "meta-data-title"),
    ("metadata_designer", "meta-data-designer"),
    ("metadata_description", "meta-data-description"),
    ("metadata_copyright", "meta-data-copyright"),
)


@_option_builder("svg")
def _svg_args(bag: SvgOptions) -> list[str]:
    return _override_tokens("export-svg", bag, _SVG_FIELDS)


@_option_builder("pdf")
def _pdf_args(bag: PdfOptions) -> list[str]:
    return _override_tokens("export-pdf", bag, _PDF_FIELDS)


@_option_builder("threemf")
def _threemf_args(bag: ThreeMfOptions) -> list[str]:
    return _override_tokens("export-3mf", bag, _THREEMF_FIELDS)


def build_export_options(
    fmt: str | ExportFormat,
    options: ExportOptions | None,
) -> list[str]:
    """Translate the option bag for *fmt* into openscad arguments.

    ``webp`` and ``avif`` use the ``png`` bag.  An unknown format, a missing
    options object, or a missing bag all produce an empty list.

    Args:
        fmt: Export format (enum member or its string value).
        options: The request's option bags, or ``None``.

    Returns:
        Ordered argument tokens to place between the output path and the
        input file.
    """
    if options is None:
        return []
    try:
        family = FORMATS[parse_format(fmt)].option_family
    except InvalidFormatError:
        return []

    bag = getattr(options, family, None)
    if bag is None:
        return []
    return _OPTION_BUILDERS[family](bag)
