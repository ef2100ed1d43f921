"""Procedural texture generator: a seeded, zone-aware "spore field" rendered as a PNG layer.

Every sample is tested against the pattern geometry in absolute canvas space
before it can become a particle:

    finder footprint        never drawn
    dark ("on") module      rejected, or dimmed under the "dim" policy
    module edge buffer      never drawn (module-aware presets)
    light module            reduced density, opacity capped (module-aware presets)
    outside the pattern     full computed density

Sampling uses a fixed stride of five uniforms per sample, so each sample's
fate depends only on its own row of random numbers. The whole field is
evaluated as numpy arrays and the result does not depend on evaluation order.

There is no vector fallback: if the raster cannot be produced the generator
returns None and the seal is composed without a texture layer.
"""

import base64
import io
from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np
from PIL import Image

from sporeseal.config import SporeFieldConfig
from sporeseal.logging import audit, get_logger, trace
from sporeseal.noise import SimplexNoise
from sporeseal.renderer import PNG_SIZE, SVG_SIZE, SVG_TO_PNG_SCALE, QrGeometry
from sporeseal.seed import config_fingerprint, seed_to_int, texture_seed

log = get_logger("texture")

CENTER = PNG_SIZE / 2
MAX_RADIUS = PNG_SIZE * 0.485  # ~97% of the radar area

NOISE_KIND = "simplex"
NOISE_SCALE = 0.012
ANGULAR_MOD_FREQUENCY = 6
ANGULAR_MOD_STRENGTH_OUTER = 0.07
ANGULAR_MOD_STRENGTH_TRANSITION = 0.02

DENSITY_MULTIPLIER = 1.2
EDGE_TAPER_START = 0.92
DENSITY_CURVE = "center-boost-pow1.2"

# Transition zone caps
ZONE_B_MIN_DENSITY = 0.05
ZONE_B_MAX_DENSITY = 0.25
ZONE_B_MIN_OPACITY = 0.10
ZONE_B_MAX_OPACITY = 0.30
ZONE_C_BLEND = 0.40

# Particle sizes in px for the small-particle presets
SMALL_DOT_MIN = 0.4
SMALL_DOT_MAX = 1.4
MODULE_MAX_RADIUS_FACTOR = 0.40

MODULE_AWARE_PRESETS = ("module-masked", "material-unified")

# Uniform columns drawn per sample
_U_X, _U_Y, _U_ACCEPT, _U_SIZE, _U_OPACITY = range(5)


class SampleClass(IntEnum):
    OUTSIDE_QR = 0
    DARK_MODULE = 1
    LIGHT_MODULE = 2
    FINDER_ZONE = 3
    EDGE_BUFFER = 4


@dataclass(frozen=True)
class Particle:
    """One accepted spore, in raster pixel coordinates."""
    x: float
    y: float
    radius: float
    opacity: float
    zone: str


@dataclass
class TextureLayer:
    png_base64: str
    particles: list[Particle]
    metadata: dict = field(default_factory=dict)


def smoothstep(edge0: float, edge1: float, x):
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def lerp(a, b, t):
    return a + (b - a) * t


def base_density(r_norm):
    """Center-heavy density curve over normalised canvas radius."""
    inv = np.maximum(0.0, 1.0 - r_norm)
    core_boost = smoothstep(0.0, 0.28, inv)
    return np.power(inv, 1.2) * (1.0 + core_boost * 2.5)


def zone_modifiers(r_qr, zone_a_end: float, zone_b_end: float):
    """Density, opacity and angular-modulation multipliers per sample.

    ``r_qr`` is the distance from the pattern centre in pattern radii. Zone A
    returns zero density; zone B ramps up under the transition caps; beyond
    it the field blends to full strength over ZONE_C_BLEND radii.
    """
    t_b = smoothstep(zone_a_end, zone_b_end, r_qr)
    blend_end = zone_b_end + ZONE_C_BLEND
    t_c = smoothstep(zone_b_end, blend_end, r_qr)

    in_a = r_qr < zone_a_end
    in_b = ~in_a & (r_qr < zone_b_end)
    in_blend = ~in_a & ~in_b & (r_qr < blend_end)

    density = np.ones_like(r_qr)
    opacity = np.ones_like(r_qr)
    angular = np.full_like(r_qr, ANGULAR_MOD_STRENGTH_OUTER)

    density = np.where(in_b, lerp(ZONE_B_MIN_DENSITY, ZONE_B_MAX_DENSITY, t_b), density)
    opacity = np.where(in_b, lerp(ZONE_B_MIN_OPACITY, ZONE_B_MAX_OPACITY, t_b), opacity)
    angular = np.where(in_b, ANGULAR_MOD_STRENGTH_TRANSITION, angular)

    density = np.where(in_blend, lerp(ZONE_B_MAX_DENSITY, 1.0, t_c), density)
    opacity = np.where(in_blend, lerp(ZONE_B_MAX_OPACITY, 1.0, t_c), opacity)
    angular = np.where(in_blend, lerp(ANGULAR_MOD_STRENGTH_TRANSITION, ANGULAR_MOD_STRENGTH_OUTER, t_c), angular)

    density = np.where(in_a, 0.0, density)
    opacity = np.where(in_a, 0.0, opacity)
    angular = np.where(in_a, 0.0, angular)
    return density, opacity, angular, in_b


def finder_exclusions_px(geometry: QrGeometry, multiplier: float) -> list[tuple[float, float, float]]:
    """Finder exclusion circles (cx, cy, radius) in raster pixels."""
    return [
        (f.center_x * SVG_TO_PNG_SCALE, f.center_y * SVG_TO_PNG_SCALE,
         f.outer_radius * SVG_TO_PNG_SCALE * multiplier)
        for f in geometry.finders
    ]


def classify_samples(x, y, geometry: QrGeometry, config: SporeFieldConfig) -> np.ndarray:
    """Classify raster positions against the pattern: finder, module, edge, or outside.

    Positions are rotated back by the pattern's rotation before the module
    lookup, since the module grid in the geometry is stored unrotated.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    classes = np.full(x.shape, SampleClass.OUTSIDE_QR, dtype=np.int8)

    finder = np.zeros(x.shape, dtype=bool)
    for fx, fy, radius in finder_exclusions_px(geometry, config.finder_exclusion_multiplier):
        finder |= np.hypot(x - fx, y - fy) < radius

    cx = geometry.center_x * SVG_TO_PNG_SCALE
    cy = geometry.center_y * SVG_TO_PNG_SCALE
    if geometry.rotation % 360 != 0:
        a = np.radians(-geometry.rotation)
        dx, dy = x - cx, y - cy
        xr = cx + dx * np.cos(a) - dy * np.sin(a)
        yr = cy + dx * np.sin(a) + dy * np.cos(a)
    else:
        xr, yr = x, y

    size = geometry.module_count
    cell = geometry.module_size_px
    u = (xr - geometry.top_left_px[0]) / cell
    v = (yr - geometry.top_left_px[1]) / cell
    inside = (u >= 0) & (u < size) & (v >= 0) & (v < size)

    col = np.clip(np.floor(u).astype(np.int64), 0, size - 1)
    row = np.clip(np.floor(v).astype(np.int64), 0, size - 1)
    modules = np.asarray(geometry.modules, dtype=bool)
    dark = inside & modules[row, col]

    edge = np.zeros(x.shape, dtype=bool)
    if config.base_preset in MODULE_AWARE_PRESETS and config.edge_buffer_factor > 0:
        fu = u - np.floor(u)
        fv = v - np.floor(v)
        dist_to_edge = np.minimum(np.minimum(fu, 1.0 - fu), np.minimum(fv, 1.0 - fv)) * cell
        edge = inside & (dist_to_edge < cell * config.edge_buffer_factor)

    classes = np.where(inside, SampleClass.LIGHT_MODULE, classes)
    classes = np.where(dark, SampleClass.DARK_MODULE, classes)
    classes = np.where(edge, SampleClass.EDGE_BUFFER, classes)
    classes = np.where(finder, SampleClass.FINDER_ZONE, classes)
    return classes.astype(np.int8)


def _particle_sizes(config, geometry, final, r_norm, opacity_mod, u):
    """Particle radius (px) and opacity before module/zone caps."""
    if config.base_preset == "material-unified":
        dot_px = geometry.dot_radius * SVG_TO_PNG_SCALE
        min_r = dot_px * config.spore_radius_min_factor
        max_r = dot_px * config.spore_radius_max_factor
        weight = np.clip(final, 0.0, 1.0)
        radius = lerp(min_r, max_r, weight) * (0.95 + u[:, _U_SIZE] * 0.1)
        opacity = lerp(config.min_opacity, config.max_opacity, weight) * (0.9 + u[:, _U_OPACITY] * 0.2)
        opacity = np.clip(opacity * opacity_mod, config.min_opacity, config.max_opacity)
    else:
        radius = lerp(SMALL_DOT_MAX, SMALL_DOT_MIN, r_norm) * (0.7 + u[:, _U_SIZE] * 0.6)
        opacity = np.clip(final * 0.9 * opacity_mod, config.min_opacity, config.max_opacity)
    return radius, opacity


def _zone_label(sample_class: int, transition: bool) -> str:
    if sample_class == SampleClass.DARK_MODULE:
        return "dark_module"
    if sample_class == SampleClass.LIGHT_MODULE:
        return "light_module"
    return "transition" if transition else "far"


def _parse_hex(color: str) -> tuple[int, int, int]:
    s = color.lstrip("#")
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    return tuple(int(s[i:i + 2], 16) for i in (0, 2, 4))


def _rasterize(particles: list[Particle], config: SporeFieldConfig) -> bytes:
    """Accumulate particle coverage into an RGBA canvas and encode it as PNG."""
    transmit = np.ones((PNG_SIZE, PNG_SIZE), dtype=np.float64)
    for p in particles:
        r = int(np.ceil(p.radius))
        x0 = max(0, int(np.floor(p.x)) - r)
        x1 = min(PNG_SIZE, int(np.floor(p.x)) + r + 1)
        y0 = max(0, int(np.floor(p.y)) - r)
        y1 = min(PNG_SIZE, int(np.floor(p.y)) + r + 1)
        if x0 >= x1 or y0 >= y1:
            continue
        ys, xs = np.mgrid[y0:y1, x0:x1]
        inside = np.hypot(xs + 0.5 - p.x, ys + 0.5 - p.y) <= p.radius
        window = transmit[y0:y1, x0:x1]
        window[inside] *= 1.0 - p.opacity

    alpha = (1.0 - transmit) * config.spore_cloud_opacity
    rgba = np.zeros((PNG_SIZE, PNG_SIZE, 4), dtype=np.uint8)
    rgba[..., :3] = _parse_hex(config.spore_color)
    rgba[..., 3] = np.round(alpha * 255).astype(np.uint8)

    buf = io.BytesIO()
    Image.fromarray(rgba).save(buf, format="PNG")
    return buf.getvalue()


@trace
def sample_particles(seed: str, geometry: QrGeometry, config: SporeFieldConfig) -> tuple[list[Particle], dict]:
    """Run the seeded sampler and return accepted particles plus sampling stats."""
    tseed = texture_seed(seed, config)
    rng = np.random.Generator(np.random.PCG64(seed_to_int(tseed)))
    noise = SimplexNoise(rng)

    n = config.spore_count
    u = rng.random((n, 5))
    x = u[:, _U_X] * PNG_SIZE
    y = u[:, _U_Y] * PNG_SIZE

    dx = x - CENTER
    dy = y - CENTER
    r_norm = np.hypot(dx, dy) / MAX_RADIUS
    in_field = r_norm <= 1.0

    qr_cx = geometry.center_x * SVG_TO_PNG_SCALE
    qr_cy = geometry.center_y * SVG_TO_PNG_SCALE
    qr_radius_px = geometry.radius * SVG_TO_PNG_SCALE
    r_qr = np.hypot(x - qr_cx, y - qr_cy) / qr_radius_px

    density_mod, opacity_mod, angular_strength, transition = zone_modifiers(
        r_qr, config.zone_a_end, config.zone_b_end)
    quiet = (r_qr < config.quiet_core_factor) | (density_mod == 0)

    classes = classify_samples(x, y, geometry, config)
    module_aware = config.base_preset in MODULE_AWARE_PRESETS
    finder = classes == SampleClass.FINDER_ZONE
    edge = classes == SampleClass.EDGE_BUFFER
    dark = classes == SampleClass.DARK_MODULE
    light = (classes == SampleClass.LIGHT_MODULE) & module_aware
    dim_dark = dark & (config.dark_module_policy == "dim")
    reject_dark = dark & ~dim_dark

    live = in_field & ~quiet
    masked = live & (finder | edge | reject_dark)
    candidate = live & ~masked

    angle = np.arctan2(dy, dx)
    noise_factor = 0.65 + noise.noise2d(x * NOISE_SCALE, y * NOISE_SCALE) * 0.35
    angular_noise = noise.noise2d(angle * 2, r_norm * 10)
    angular = 1.0 + np.sin(angle * ANGULAR_MOD_FREQUENCY + angular_noise * 2) * angular_strength

    # Inside modules the field is flat; noise only shapes the open field
    in_module = light | dim_dark
    noise_factor = np.where(in_module, 1.0, noise_factor)
    angular = np.where(in_module, 1.0, angular)

    final = base_density(r_norm) * noise_factor * angular * density_mod
    final = np.where(in_module, final * config.light_module_density, final)
    final = np.where(r_norm > EDGE_TAPER_START, final * smoothstep(1.0, EDGE_TAPER_START, r_norm), final)

    accepted = candidate & (u[:, _U_ACCEPT] < final * DENSITY_MULTIPLIER)

    radius, opacity = _particle_sizes(config, geometry, final, r_norm, opacity_mod, u)
    opacity = np.where(in_module, np.minimum(opacity, config.module_max_opacity), opacity)
    radius = np.where(in_module, np.minimum(radius, geometry.module_size_px * MODULE_MAX_RADIUS_FACTOR), radius)
    opacity = np.where(transition, np.minimum(opacity, ZONE_B_MAX_OPACITY), opacity)

    particles = [
        Particle(
            x=float(x[i]), y=float(y[i]),
            radius=float(radius[i]), opacity=float(opacity[i]),
            zone=_zone_label(int(classes[i]) if in_module[i] else SampleClass.OUTSIDE_QR,
                             bool(transition[i])),
        )
        for i in np.flatnonzero(accepted)
    ]

    stats = {
        "samples": n,
        "accepted": len(particles),
        "outsideField": int(np.count_nonzero(~in_field)),
        "quietCoreSkipped": int(np.count_nonzero(in_field & quiet)),
        "masked": int(np.count_nonzero(masked)),
        "unmasked": int(np.count_nonzero(candidate)),
        "finderSkipped": int(np.count_nonzero(live & finder)),
        "edgeBufferSkipped": int(np.count_nonzero(live & edge & ~finder)),
        "darkModuleSkipped": int(np.count_nonzero(live & reject_dark)),
        "darkModuleDimmed": int(np.count_nonzero(accepted & dim_dark)),
        "lightModuleCount": int(np.count_nonzero(accepted & light)),
        "zoneBCount": int(np.count_nonzero(accepted & transition)),
        "textureSeed": tseed[:16],
    }
    return particles, stats


@trace
def generate(seed: str, geometry: QrGeometry, config: SporeFieldConfig) -> TextureLayer | None:
    """Generate the spore-field raster for one seal.

    Returns:
        TextureLayer with the base64 PNG, the accepted particles, and
        metadata; or None if the raster could not be produced.
    """
    particles, stats = sample_particles(seed, geometry, config)

    try:
        png = _rasterize(particles, config)
    except (OSError, ValueError, MemoryError):
        log.error("spore field rasterization failed", exc_info=True)
        audit("texture.unavailable", logger=log, preset=config.base_preset, samples=config.spore_count)
        return None

    metadata = {
        "generator": f"zone-aware-raster/{config.base_preset}",
        "basePreset": config.base_preset,
        "canvas": PNG_SIZE,
        "noise": NOISE_KIND,
        "densityCurve": DENSITY_CURVE,
        "edgeTaper": True,
        "darkModulePolicy": config.dark_module_policy,
        "configHash": config_fingerprint(config),
        **stats,
    }
    audit("texture.generated", logger=log,
          preset=config.base_preset, samples=stats["samples"], accepted=stats["accepted"],
          masked=stats["masked"], png_bytes=len(png))
    return TextureLayer(
        png_base64=base64.b64encode(png).decode("ascii"),
        particles=particles,
        metadata=metadata,
    )


def image_element(png_base64: str) -> str:
    """SVG <image> node placing the texture over the full canvas."""
    return (
        f'<image id="spore-field" x="0" y="0" width="{SVG_SIZE}" height="{SVG_SIZE}" '
        f'preserveAspectRatio="none" href="data:image/png;base64,{png_base64}"/>'
    )
