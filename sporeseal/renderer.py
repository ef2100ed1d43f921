"""Dot-based pattern renderer: QR modules as circles or diamonds with radar-style finders.

The square grid dissolves into dots so the pattern reads as part of the
spore field rather than a sticker on top of it. Only the shapes change; every
dark module keeps its position and the three finder markers keep the
position and size a decoder expects.

Layering (enforced by the compositor):
    1. Spore raster
    2. Radar rings
    3. This pattern
    4. Radar lines (when drawn above)
    5. Outer typography
"""

import math
from dataclasses import dataclass

from sporeseal.config import SporeFieldConfig
from sporeseal.encoder import FINDER_SIZE, finder_origins, is_finder_cell
from sporeseal.errors import EmptyPatternError
from sporeseal.logging import audit, get_logger, trace

log = get_logger("renderer")

# Vector canvas (base template viewBox is 0 0 1000 1000)
SVG_SIZE = 1000
CANVAS_CENTER = SVG_SIZE / 2

# Raster canvas used by the texture layer
PNG_SIZE = 512
SVG_TO_PNG_SCALE = PNG_SIZE / SVG_SIZE

# The pattern occupies ~68% of the inner radar diameter at scale 1.0
INNER_RADAR_DIAMETER = 500
QR_RADIUS_FACTOR = 0.68

# Finder marker proportions, in cells
FINDER_RING_INSET = 0.5
FINDER_RING_STROKE = 1.0
FINDER_DOT_RADIUS = 1.5

PATTERN_OPACITY = 0.97
FINDER_OPACITY = 0.95


@dataclass(frozen=True)
class FinderInfo:
    """A finder marker in absolute SVG coordinates (after rotation)."""
    center_x: float
    center_y: float
    outer_radius: float


@dataclass(frozen=True)
class QrGeometry:
    """Where the pattern lives on the canvas, for texture masking.

    SVG-space fields describe the vector canvas; ``module_size_px`` and
    ``top_left_px`` describe the unrotated module grid on the raster canvas.
    ``rotation`` is needed to map raster samples back into module space.
    """
    radius: float
    center_x: float
    center_y: float
    module_size: float
    dot_radius: float
    finders: tuple[FinderInfo, ...]
    modules: tuple[tuple[bool, ...], ...]
    module_count: int
    module_size_px: float
    top_left_px: tuple[float, float]
    rotation: float = 0.0


@dataclass(frozen=True)
class PatternOptions:
    dot_color: str = "#000000"
    dot_shape: str = "circle"
    dot_size: float = 0.84
    rotation: float = 0.0
    contrast_boost: float = 1.0

    @classmethod
    def from_config(cls, config: SporeFieldConfig) -> "PatternOptions":
        return cls(
            dot_color=config.qr_dot_color,
            dot_shape=config.qr_dot_shape,
            dot_size=config.qr_dot_size,
            rotation=config.qr_rotation,
            contrast_boost=config.module_contrast_boost,
        )


@dataclass
class PatternRender:
    markup: str
    geometry: QrGeometry
    shape_count: int


def qr_radius(scale: float = 1.0) -> float:
    """Pattern radius (half the side of the module square) in SVG units."""
    return INNER_RADAR_DIAMETER * QR_RADIUS_FACTOR / 2 * scale


def rotate_point(x: float, y: float, degrees: float,
                 cx: float = CANVAS_CENTER, cy: float = CANVAS_CENTER) -> tuple[float, float]:
    """Rotate (x, y) around (cx, cy) the way SVG ``rotate(deg cx cy)`` does."""
    if degrees % 360 == 0:
        return x, y
    a = math.radians(degrees)
    cos_a, sin_a = math.cos(a), math.sin(a)
    dx, dy = x - cx, y - cy
    return cx + dx * cos_a - dy * sin_a, cy + dx * sin_a + dy * cos_a


def _fmt(v: float) -> str:
    return f"{v:.2f}"


def _circle(cx: float, cy: float, r: float) -> str:
    return f'<circle cx="{_fmt(cx)}" cy="{_fmt(cy)}" r="{_fmt(r)}"/>'


def _diamond(cx: float, cy: float, r: float) -> str:
    # Explicit path so neighbouring diamonds meet exactly at their tips
    return (
        f'<path d="M{_fmt(cx)},{_fmt(cy - r)} L{_fmt(cx + r)},{_fmt(cy)} '
        f'L{_fmt(cx)},{_fmt(cy + r)} L{_fmt(cx - r)},{_fmt(cy)} Z"/>'
    )


def _finder_marker(cx: float, cy: float, cell: float, color: str) -> str:
    ring_radius = FINDER_SIZE * cell / 2 - cell * FINDER_RING_INSET
    return (
        f'<g class="finder-marker">'
        f'<circle cx="{_fmt(cx)}" cy="{_fmt(cy)}" r="{_fmt(ring_radius)}" fill="none" '
        f'stroke="{color}" stroke-width="{_fmt(cell * FINDER_RING_STROKE)}" opacity="{FINDER_OPACITY}"/>'
        f'<circle cx="{_fmt(cx)}" cy="{_fmt(cy)}" r="{_fmt(cell * FINDER_DOT_RADIUS)}" '
        f'fill="{color}" opacity="{FINDER_OPACITY}"/>'
        f'</g>'
    )


def finder_footprint_radius(cell: float) -> float:
    """Outer edge of a finder marker's ring (ring radius + half its stroke)."""
    return FINDER_SIZE * cell / 2 - cell * FINDER_RING_INSET + cell * FINDER_RING_STROKE / 2


@trace
def render(
    matrix: list[list[bool]],
    size: int,
    target_radius: float,
    options: PatternOptions | None = None,
) -> PatternRender:
    """Render a module matrix as a group of dots with synthesized finder markers.

    Args:
        matrix: size x size booleans, True = dark module.
        size: Modules per side.
        target_radius: Half the side of the module square, in SVG units.
        options: Dot colour/shape/size, rotation, and contrast boost.

    Returns:
        PatternRender with the SVG group, the geometry for texture masking,
        and the number of data shapes emitted.

    Raises:
        EmptyPatternError: if no data module would be drawn.
    """
    options = options or PatternOptions()
    cell = target_radius * 2 / size
    dot_radius = cell * options.dot_size / 2 * math.sqrt(options.contrast_boost)
    start_x = CANVAS_CENTER - target_radius
    start_y = CANVAS_CENTER - target_radius
    draw_shape = _diamond if options.dot_shape == "diamond" else _circle

    shapes = []
    for row in range(size):
        for col in range(size):
            if is_finder_cell(row, col, size) or not matrix[row][col]:
                continue
            cx = start_x + (col + 0.5) * cell
            cy = start_y + (row + 0.5) * cell
            shapes.append(draw_shape(cx, cy, dot_radius))

    if not shapes:
        raise EmptyPatternError(f"no data modules to render in a {size}x{size} matrix")

    footprint = finder_footprint_radius(cell)
    markers = []
    finders = []
    for orig_r, orig_c in finder_origins(size):
        fx = start_x + (orig_c + FINDER_SIZE / 2) * cell
        fy = start_y + (orig_r + FINDER_SIZE / 2) * cell
        markers.append(_finder_marker(fx, fy, cell, options.dot_color))
        rx, ry = rotate_point(fx, fy, options.rotation)
        finders.append(FinderInfo(center_x=rx, center_y=ry, outer_radius=footprint))

    transform = ""
    if options.rotation % 360 != 0:
        transform = f' transform="rotate({options.rotation:g} {CANVAS_CENTER:g} {CANVAS_CENTER:g})"'

    markup = "\n".join([
        f'<g id="qr-pattern" data-render-mode="seal" opacity="{PATTERN_OPACITY}" '
        f'fill="{options.dot_color}"{transform}>',
        f'<g id="qr-modules" data-shape="{options.dot_shape}">',
        *shapes,
        "</g>",
        '<g id="qr-finders">',
        *markers,
        "</g>",
        "</g>",
    ])

    geometry = QrGeometry(
        radius=target_radius,
        center_x=CANVAS_CENTER,
        center_y=CANVAS_CENTER,
        module_size=cell,
        dot_radius=dot_radius,
        finders=tuple(finders),
        modules=tuple(tuple(bool(v) for v in row) for row in matrix),
        module_count=size,
        module_size_px=cell * SVG_TO_PNG_SCALE,
        top_left_px=(start_x * SVG_TO_PNG_SCALE, start_y * SVG_TO_PNG_SCALE),
        rotation=options.rotation,
    )

    audit("pattern.rendered", logger=log,
          size=f"{size}x{size}", shapes=len(shapes), shape=options.dot_shape,
          cell=round(cell, 3), dot_radius=round(dot_radius, 3), rotation=options.rotation)
    return PatternRender(markup=markup, geometry=geometry, shape_count=len(shapes))


def rendering_metadata(options: PatternOptions) -> dict:
    """Rendering parameters for the artifact's metadata block."""
    return {
        "mode": "seal",
        "moduleShape": options.dot_shape,
        "dotSize": options.dot_size,
        "contrastBoost": options.contrast_boost,
        "rotation": options.rotation,
        "finderStyle": "radar-concentric",
        "radiusFactor": QR_RADIUS_FACTOR,
    }
