"""Tests for the zone-aware spore field generator."""

import base64
import dataclasses
import io
import math

import numpy as np
import pytest
from PIL import Image

from sporeseal import texture
from sporeseal.renderer import PatternOptions, SVG_TO_PNG_SCALE, qr_radius, render
from sporeseal.seed import derive_seed
from sporeseal.texture import (
    CENTER,
    MAX_RADIUS,
    ZONE_B_MAX_OPACITY,
    SampleClass,
    classify_samples,
    finder_exclusions_px,
    generate,
    image_element,
)

EPS = 1e-9


@pytest.fixture
def seed():
    return derive_seed("abc123", "v1")


@pytest.fixture
def layer(seed, pattern, config):
    return generate(seed, pattern.geometry, config)


def _positions(layer):
    xs = np.array([p.x for p in layer.particles])
    ys = np.array([p.y for p in layer.particles])
    return xs, ys


class TestDeterminism:

    def test_same_inputs_same_raster(self, seed, pattern, config):
        a = generate(seed, pattern.geometry, config)
        b = generate(seed, pattern.geometry, config)
        assert a.png_base64 == b.png_base64
        assert a.particles == b.particles
        assert a.metadata == b.metadata

    def test_token_changes_raster(self, layer, pattern, config):
        other = generate(derive_seed("abc124", "v1"), pattern.geometry, config)
        assert other.png_base64 != layer.png_base64

    def test_raster_is_canvas_sized_png(self, layer):
        img = Image.open(io.BytesIO(base64.b64decode(layer.png_base64)))
        assert img.size == (512, 512)
        assert img.mode == "RGBA"


class TestZoneExclusion:

    def test_particles_accepted(self, layer):
        assert len(layer.particles) > 0

    def test_no_particle_in_finder_zone(self, layer, pattern, config):
        for fx, fy, radius in finder_exclusions_px(pattern.geometry, config.finder_exclusion_multiplier):
            for p in layer.particles:
                assert math.hypot(p.x - fx, p.y - fy) >= radius - EPS

    def test_no_particle_in_quiet_core(self, layer, pattern, config):
        g = pattern.geometry
        cx, cy = g.center_x * SVG_TO_PNG_SCALE, g.center_y * SVG_TO_PNG_SCALE
        radius_px = g.radius * SVG_TO_PNG_SCALE
        for p in layer.particles:
            assert math.hypot(p.x - cx, p.y - cy) / radius_px >= config.quiet_core_factor - EPS

    def test_particles_inside_field(self, layer):
        for p in layer.particles:
            assert math.hypot(p.x - CENTER, p.y - CENTER) <= MAX_RADIUS + EPS

    def test_dark_modules_rejected_by_default(self, layer, pattern, config):
        xs, ys = _positions(layer)
        classes = classify_samples(xs, ys, pattern.geometry, config)
        assert not np.any(classes == SampleClass.DARK_MODULE)
        assert not np.any(classes == SampleClass.FINDER_ZONE)

    def test_dim_policy_respects_opacity_ceiling(self, seed, pattern, config):
        dim = dataclasses.replace(config, dark_module_policy="dim", spore_count=20000)
        out = generate(seed, pattern.geometry, dim)
        xs, ys = _positions(out)
        classes = classify_samples(xs, ys, pattern.geometry, dim)
        on_dark = [p for p, c in zip(out.particles, classes) if c == SampleClass.DARK_MODULE]
        assert all(p.opacity <= dim.module_max_opacity + EPS for p in on_dark)
        assert all(p.zone == "dark_module" for p in on_dark)

    def test_light_modules_capped(self, layer, config):
        for p in layer.particles:
            if p.zone == "light_module":
                assert p.opacity <= config.module_max_opacity + EPS

    def test_transition_zone_capped(self, layer):
        for p in layer.particles:
            if p.zone == "transition":
                assert p.opacity <= ZONE_B_MAX_OPACITY + EPS

    def test_rotated_finders_masked(self, seed, matrix, config):
        rotated = render(matrix.modules, matrix.size, qr_radius(), PatternOptions(rotation=30))
        out = generate(seed, rotated.geometry, config)
        for fx, fy, radius in finder_exclusions_px(rotated.geometry, config.finder_exclusion_multiplier):
            for p in out.particles:
                assert math.hypot(p.x - fx, p.y - fy) >= radius - EPS

    def test_zone_system_has_no_light_module_zone(self, seed, pattern, config):
        zoned = dataclasses.replace(config, base_preset="zone-system")
        out = generate(seed, pattern.geometry, zoned)
        assert all(p.zone in ("far", "transition") for p in out.particles)
        assert out.metadata["edgeBufferSkipped"] == 0


class TestClassify:

    def test_finder_centre(self, pattern, config):
        f = pattern.geometry.finders[0]
        classes = classify_samples([f.center_x * SVG_TO_PNG_SCALE], [f.center_y * SVG_TO_PNG_SCALE],
                                   pattern.geometry, config)
        assert classes[0] == SampleClass.FINDER_ZONE

    def test_far_corner_is_outside(self, pattern, config):
        classes = classify_samples([5.0], [5.0], pattern.geometry, config)
        assert classes[0] == SampleClass.OUTSIDE_QR

    def test_module_centres(self, matrix, pattern, config):
        g = pattern.geometry
        xs, ys, expected = [], [], []
        for row in range(8, matrix.size - 8):
            for col in range(8, matrix.size - 8):
                xs.append(g.top_left_px[0] + (col + 0.5) * g.module_size_px)
                ys.append(g.top_left_px[1] + (row + 0.5) * g.module_size_px)
                expected.append(SampleClass.DARK_MODULE if matrix.modules[row][col] else SampleClass.LIGHT_MODULE)
        classes = classify_samples(xs, ys, g, config)
        assert list(classes) == [int(e) for e in expected]


class TestLayerOutput:

    def test_metadata(self, layer, config):
        meta = layer.metadata
        assert meta["noise"] == "simplex"
        assert meta["edgeTaper"] is True
        assert meta["samples"] == config.spore_count
        assert meta["accepted"] == len(layer.particles)
        assert meta["basePreset"] == "material-unified"

    def test_sample_accounting(self, layer):
        meta = layer.metadata
        total = meta["masked"] + meta["unmasked"] + meta["quietCoreSkipped"] + meta["outsideField"]
        assert total == meta["samples"]

    def test_raster_failure_returns_none(self, seed, pattern, config, monkeypatch):
        def broken(particles, cfg):
            raise OSError("encoder unavailable")

        monkeypatch.setattr(texture, "_rasterize", broken)
        assert generate(seed, pattern.geometry, config) is None

    def test_image_element_covers_canvas(self):
        el = image_element("QUJD")
        assert 'x="0"' in el and 'y="0"' in el
        assert 'width="1000"' in el and 'height="1000"' in el
        assert "data:image/png;base64,QUJD" in el
