"""Seal configuration: typed spore-field settings, base presets, and validation.

Each base preset selects a different texture algorithm, not just different
values:

    zone-system       3-zone radial field + hard quiet core + finder exclusion
    module-masked     zone-system + per-module masking with light-module caps
    material-unified  module-masked with particles sized against the QR dots

All presets mask finder markers and "on" data modules, so none of them can
degrade scanning.
"""

import dataclasses
import json
import re
from dataclasses import dataclass, field
from pathlib import Path

from sporeseal.errors import InvalidConfigError
from sporeseal.logging import get_logger

log = get_logger("config")

DEFAULT_PRESET = "material-unified"
DOT_SHAPES = ("circle", "diamond")
DARK_MODULE_POLICIES = ("reject", "dim")

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass(frozen=True)
class RingStyle:
    color: str = "#000000"
    opacity: float = 1.0


@dataclass(frozen=True)
class TextStyle:
    color: str = "#ffffff"
    opacity: float = 1.0
    stroke_width: float = 0.0
    stroke_color: str = "#000000"


@dataclass(frozen=True)
class RadarLineStyle:
    color: str = "#000000"
    opacity: float = 0.6
    above_qr: bool = False
    stroke_width: float = 1.0  # multiplier over the template's own width


@dataclass(frozen=True)
class BaseLayerConfig:
    """Style overrides applied to the base template before compositing."""

    outer_ring: RingStyle = field(default_factory=RingStyle)
    text_ring: RingStyle = field(default_factory=lambda: RingStyle(opacity=0.9))
    text: TextStyle = field(default_factory=TextStyle)
    radar_lines: RadarLineStyle = field(default_factory=RadarLineStyle)
    radar_background: RingStyle = field(default_factory=lambda: RingStyle(color="#ffffff", opacity=0.0))


@dataclass(frozen=True)
class SporeFieldConfig:
    """Everything that shapes one seal besides its token and version."""

    base_preset: str = DEFAULT_PRESET

    # Core density
    spore_count: int = 32000
    min_opacity: float = 0.22
    max_opacity: float = 0.55

    # Zones, as fractions of the QR radius
    zone_a_end: float = 0.40
    zone_b_end: float = 0.70
    quiet_core_factor: float = 0.55

    # Module masking
    edge_buffer_factor: float = 0.12
    light_module_density: float = 0.10
    module_max_opacity: float = 0.18
    finder_exclusion_multiplier: float = 1.25
    dark_module_policy: str = "reject"

    # Particle sizing against the QR dot radius (material-unified)
    spore_radius_min_factor: float = 0.55
    spore_radius_max_factor: float = 0.85

    # QR rendering
    module_contrast_boost: float = 1.0
    qr_scale: float = 1.0
    qr_rotation: float = 0.0
    qr_dot_color: str = "#000000"
    qr_dot_size: float = 0.84
    qr_dot_shape: str = "circle"
    qr_error_correction: float = 15.0

    # Spore cloud appearance
    spore_color: str = "#000000"
    spore_cloud_opacity: float = 1.0

    base_layer: BaseLayerConfig = field(default_factory=BaseLayerConfig)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


PRESETS: dict[str, SporeFieldConfig] = {
    "zone-system": SporeFieldConfig(
        base_preset="zone-system",
        spore_count=80000,
        min_opacity=0.18,
        max_opacity=0.92,
    ),
    "module-masked": SporeFieldConfig(
        base_preset="module-masked",
        spore_count=80000,
        min_opacity=0.18,
        max_opacity=0.92,
    ),
    "material-unified": SporeFieldConfig(),
}

PRESET_DESCRIPTIONS = {
    "zone-system": "3-zone radial field with a hard quiet core and finder exclusion.",
    "module-masked": "Full module-matrix masking with light-module density and opacity caps.",
    "material-unified": "Module-masked field with spores sized to match the QR dots.",
}


def preset_defaults(name: str) -> SporeFieldConfig:
    """Return the default config for a base preset."""
    try:
        return PRESETS[name]
    except KeyError:
        raise InvalidConfigError([f"unknown base preset: {name!r}"]) from None


def _range(errors: list[str], name: str, value, lo, hi):
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not (lo <= value <= hi):
        errors.append(f"{name} must be between {lo} and {hi}")


def _color(errors: list[str], name: str, value):
    if not isinstance(value, str) or not _HEX_COLOR.match(value):
        errors.append(f"{name} must be a hex colour like '#1a2b3c'")


def validate_config(config: SporeFieldConfig) -> list[str]:
    """Check every field against its allowed range. Returns error messages."""
    errors: list[str] = []

    if config.base_preset not in PRESETS:
        errors.append(f"unknown base preset: {config.base_preset!r}")

    if not isinstance(config.spore_count, int) or not (1000 <= config.spore_count <= 500000):
        errors.append("spore_count must be an integer between 1000 and 500000")
    _range(errors, "min_opacity", config.min_opacity, 0, 1)
    _range(errors, "max_opacity", config.max_opacity, 0, 1)
    if config.min_opacity > config.max_opacity:
        errors.append("min_opacity cannot be greater than max_opacity")

    _range(errors, "zone_a_end", config.zone_a_end, 0, 1)
    _range(errors, "zone_b_end", config.zone_b_end, 0, 1)
    if config.zone_a_end >= config.zone_b_end:
        errors.append("zone_a_end must be less than zone_b_end")
    _range(errors, "quiet_core_factor", config.quiet_core_factor, 0, 1)

    _range(errors, "edge_buffer_factor", config.edge_buffer_factor, 0, 0.5)
    _range(errors, "light_module_density", config.light_module_density, 0, 1)
    _range(errors, "module_max_opacity", config.module_max_opacity, 0, 1)
    _range(errors, "finder_exclusion_multiplier", config.finder_exclusion_multiplier, 1, 2)
    if config.dark_module_policy not in DARK_MODULE_POLICIES:
        errors.append(f"dark_module_policy must be one of {', '.join(DARK_MODULE_POLICIES)}")

    _range(errors, "spore_radius_min_factor", config.spore_radius_min_factor, 0.3, 1.2)
    _range(errors, "spore_radius_max_factor", config.spore_radius_max_factor, 0.3, 1.2)
    if config.spore_radius_min_factor > config.spore_radius_max_factor:
        errors.append("spore_radius_min_factor cannot be greater than spore_radius_max_factor")

    _range(errors, "module_contrast_boost", config.module_contrast_boost, 1.0, 1.5)
    _range(errors, "qr_scale", config.qr_scale, 0.5, 1.5)
    _range(errors, "qr_rotation", config.qr_rotation, 0, 360)
    _color(errors, "qr_dot_color", config.qr_dot_color)
    _range(errors, "qr_dot_size", config.qr_dot_size, 0.5, 1.2)
    if config.qr_dot_shape not in DOT_SHAPES:
        errors.append(f"qr_dot_shape must be one of {', '.join(DOT_SHAPES)}")
    _range(errors, "qr_error_correction", config.qr_error_correction, 7, 30)

    _color(errors, "spore_color", config.spore_color)
    _range(errors, "spore_cloud_opacity", config.spore_cloud_opacity, 0, 1)

    layer = config.base_layer
    for name, style in (("outer_ring", layer.outer_ring), ("text_ring", layer.text_ring),
                        ("radar_background", layer.radar_background)):
        _color(errors, f"base_layer.{name}.color", style.color)
        _range(errors, f"base_layer.{name}.opacity", style.opacity, 0, 1)
    _color(errors, "base_layer.text.color", layer.text.color)
    _range(errors, "base_layer.text.opacity", layer.text.opacity, 0, 1)
    _range(errors, "base_layer.text.stroke_width", layer.text.stroke_width, 0, 10)
    _color(errors, "base_layer.text.stroke_color", layer.text.stroke_color)
    _color(errors, "base_layer.radar_lines.color", layer.radar_lines.color)
    _range(errors, "base_layer.radar_lines.opacity", layer.radar_lines.opacity, 0, 1)
    _range(errors, "base_layer.radar_lines.stroke_width", layer.radar_lines.stroke_width, 0, 5)

    return errors


def ensure_valid(config: SporeFieldConfig) -> SporeFieldConfig:
    """Raise InvalidConfigError if the config fails validation."""
    errors = validate_config(config)
    if errors:
        raise InvalidConfigError(errors)
    return config


# ---------------------------------------------------------------------------
# Loading from plain mappings / JSON
# ---------------------------------------------------------------------------

def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


# Keys used by older tuner exports
_ALIASES = {
    "base_layer_config": "base_layer",
    "light_module_max_opacity": "module_max_opacity",
}


def _normalize_keys(mapping: dict) -> dict:
    out = {}
    for key, value in mapping.items():
        name = _snake(key)
        name = _ALIASES.get(name, name)
        out[name] = value
    return out


def _build(cls, mapping: dict, path: str):
    known = {f.name: f for f in dataclasses.fields(cls)}
    values = {}
    unknown = []
    for name, value in _normalize_keys(mapping).items():
        if name not in known:
            unknown.append(f"{path}{name}")
            continue
        if value is None:
            continue
        default = getattr(cls(), name)
        if dataclasses.is_dataclass(default):
            if not isinstance(value, dict):
                raise InvalidConfigError([f"{path}{name} must be an object"])
            values[name] = _build(type(default), value, f"{path}{name}.")
        else:
            values[name] = value
    if unknown:
        raise InvalidConfigError([f"unknown config key: {k}" for k in unknown])
    return values


def config_from_dict(mapping: dict) -> SporeFieldConfig:
    """Build a config from a mapping, starting from its preset's defaults.

    Accepts snake_case or camelCase keys and a nested ``base_layer`` object.
    Absent or null fields keep the preset default.
    """
    normalized = _normalize_keys(mapping)
    base = preset_defaults(normalized.get("base_preset") or DEFAULT_PRESET)
    values = _build(SporeFieldConfig, mapping, "")

    if "base_layer" in values:
        layer_values = values.pop("base_layer")
        layer = base.base_layer
        for name, sub in layer_values.items():
            if isinstance(sub, dict):
                sub = dataclasses.replace(getattr(layer, name), **sub)
            layer = dataclasses.replace(layer, **{name: sub})
        values["base_layer"] = layer

    return dataclasses.replace(base, **values)


def load_config(path: str | Path) -> SporeFieldConfig:
    """Read a JSON config file (tuner export or hand-written)."""
    path = Path(path)
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, dict):
        raise InvalidConfigError([f"{path}: top-level JSON value must be an object"])
    # Tuner exports wrap the settings in {"config": {...}}
    if "config" in raw and isinstance(raw["config"], dict):
        raw = raw["config"]
    config = config_from_dict(raw)
    log.debug("config loaded from %s (preset=%s)", path, config.base_preset)
    return config
