"""Compositor: merge the validated base, the texture layer and the pattern into one SVG.

Z-order, bottom to top:

    radar background fill   (only when its opacity > 0)
    spore texture           (<image>, omitted when the generator returned None)
    outer-ring, text-ring, radar-rings
    radar-lines             (here when drawn below the pattern)
    qr-pattern
    radar-lines             (here when drawn above the pattern)
    typography

Style overrides are applied to the parsed base groups before they are
placed. The compositor only moves structural elements around; the one thing
it adds besides the generated layers is the trailing metadata comment.
"""

import json
import re
from xml.etree import ElementTree as ET

from sporeseal.config import BaseLayerConfig, SporeFieldConfig
from sporeseal.errors import ConfigurationIntegrityError
from sporeseal.logging import get_logger
from sporeseal.renderer import CANVAS_CENTER
from sporeseal.template import BaseTemplate
from sporeseal.texture import TextureLayer, image_element

log = get_logger("compositor")

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

RING_GROUPS = ("outer-ring", "text-ring", "radar-rings")
LINE_GROUP = "radar-lines"
TYPOGRAPHY_GROUP = "typography"
REQUIRED_GROUPS = RING_GROUPS + (LINE_GROUP, TYPOGRAPHY_GROUP)

RADAR_BACKGROUND_RADIUS = 365

METADATA_TAG = "seal-metadata"
_METADATA_RE = re.compile(r"\s*<!-- " + METADATA_TAG + r"\b.*?-->\s*$", re.DOTALL)


def _q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def _num(v: float) -> str:
    return f"{v:g}"


def _parse_fragment(markup: str) -> list[ET.Element]:
    wrapper = ET.fromstring(f'<svg xmlns="{SVG_NS}" xmlns:xlink="{XLINK_NS}">{markup}</svg>')
    return list(wrapper)


def _index_groups(root: ET.Element) -> dict[str, ET.Element]:
    groups = {}
    for el in root:
        gid = el.get("id")
        if el.tag == _q("g") and gid in REQUIRED_GROUPS:
            groups[gid] = el
    missing = [g for g in REQUIRED_GROUPS if g not in groups]
    if missing:
        raise ConfigurationIntegrityError(f"base template is missing required groups: {', '.join(missing)}")
    return groups


def apply_style_overrides(groups: dict[str, ET.Element], style: BaseLayerConfig) -> None:
    """Write base-layer style onto the parsed template groups, in place.

    Children inherit colour and opacity from their group; radar-line stroke
    widths are scaled by ``style.radar_lines.stroke_width``.
    """
    outer = groups["outer-ring"]
    outer.set("stroke", style.outer_ring.color)
    outer.set("opacity", _num(style.outer_ring.opacity))

    text_ring = groups["text-ring"]
    text_ring.set("fill", style.text_ring.color)
    text_ring.set("opacity", _num(style.text_ring.opacity))

    lines = groups[LINE_GROUP]
    lines.set("stroke", style.radar_lines.color)
    lines.set("opacity", _num(style.radar_lines.opacity))
    if style.radar_lines.stroke_width != 1.0:
        for child in lines.iter():
            width = child.get("stroke-width")
            if width is not None:
                child.set("stroke-width", _num(round(float(width) * style.radar_lines.stroke_width, 4)))

    text = groups[TYPOGRAPHY_GROUP]
    text.set("fill", style.text.color)
    text.set("opacity", _num(style.text.opacity))
    text.set("stroke", style.text.stroke_color)
    text.set("stroke-width", _num(style.text.stroke_width))


def _radar_background(style: BaseLayerConfig) -> ET.Element:
    return ET.Element(_q("circle"), {
        "id": "radar-background",
        "cx": _num(CANVAS_CENTER),
        "cy": _num(CANVAS_CENTER),
        "r": _num(RADAR_BACKGROUND_RADIUS),
        "fill": style.radar_background.color,
        "opacity": _num(style.radar_background.opacity),
    })


def _metadata_value(value) -> str:
    if isinstance(value, (dict, list)):
        text = json.dumps(value, sort_keys=True, separators=(",", ":"))
    elif isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    # One line per key; "--" may not appear inside an XML comment
    text = " ".join(text.splitlines())
    return re.sub(r"-(?=-)", "- ", text)


def format_metadata(metadata: dict) -> str:
    """Render the trailing metadata comment, one ``key: value`` per line."""
    lines = [f"<!-- {METADATA_TAG}"]
    lines += [f"{key}: {_metadata_value(value)}" for key, value in metadata.items()]
    lines.append("-->")
    return "\n".join(lines)


def strip_metadata(svg: str) -> str:
    """The artifact without its metadata comment, for identity comparisons."""
    return _METADATA_RE.sub("", svg)


def compose(
    base: BaseTemplate,
    texture: TextureLayer | None,
    pattern: str,
    config: SporeFieldConfig,
    metadata: dict,
) -> str:
    """Compose the final seal SVG.

    Args:
        base: The validated base template.
        texture: Spore field layer, or None to compose without one.
        pattern: The renderer's ``<g id="qr-pattern">`` markup.
        config: Effective config; its base layer drives style overrides and
            line placement.
        metadata: Ordered fields for the metadata comment. Texture
            parameters and the effective config are appended here.

    Raises:
        ConfigurationIntegrityError: if the base cannot be parsed or lacks a
            required group.
    """
    try:
        base_root = ET.fromstring(base.text)
    except ET.ParseError as e:
        raise ConfigurationIntegrityError(f"base template is not well-formed SVG: {e}") from e

    groups = _index_groups(base_root)
    style = config.base_layer
    apply_style_overrides(groups, style)

    root = ET.Element(base_root.tag, dict(base_root.attrib))
    for el in base_root:
        if el.get("id") not in REQUIRED_GROUPS:
            root.append(el)

    if style.radar_background.opacity > 0:
        root.append(_radar_background(style))
    if texture is not None:
        root.extend(_parse_fragment(image_element(texture.png_base64)))
    for gid in RING_GROUPS:
        root.append(groups[gid])

    above = style.radar_lines.above_qr
    if not above:
        root.append(groups[LINE_GROUP])
    root.extend(_parse_fragment(pattern))
    if above:
        root.append(groups[LINE_GROUP])
    root.append(groups[TYPOGRAPHY_GROUP])

    body = ET.tostring(root, encoding="unicode")

    record = dict(metadata)
    record["texture"] = texture.metadata if texture is not None else "none"
    record["config"] = config.to_dict()

    log.debug("composed seal: texture=%s lines_above=%s", texture is not None, above)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n" + format_metadata(record) + "\n"
