"""Tests for config presets, loading and validation."""

import json

import pytest

from sporeseal.config import (
    PRESETS,
    SporeFieldConfig,
    config_from_dict,
    ensure_valid,
    load_config,
    preset_defaults,
    validate_config,
)
from sporeseal.errors import InvalidConfigError


class TestPresets:

    def test_defaults_valid(self):
        assert validate_config(SporeFieldConfig()) == []

    @pytest.mark.parametrize("name", list(PRESETS))
    def test_every_preset_valid(self, name):
        assert validate_config(preset_defaults(name)) == []
        assert preset_defaults(name).base_preset == name

    def test_unknown_preset(self):
        with pytest.raises(InvalidConfigError):
            preset_defaults("dot-zones")


class TestFromDict:

    def test_camel_case_and_nesting(self):
        config = config_from_dict({
            "basePreset": "zone-system",
            "sporeCount": 5000,
            "baseLayer": {"outerRing": {"color": "#ff0000"}},
        })
        assert config.base_preset == "zone-system"
        assert config.spore_count == 5000
        assert config.base_layer.outer_ring.color == "#ff0000"
        assert config.base_layer.outer_ring.opacity == 1.0
        # Untouched fields come from the preset
        assert config.min_opacity == PRESETS["zone-system"].min_opacity

    def test_snake_case(self):
        config = config_from_dict({"qr_rotation": 15, "qr_dot_shape": "diamond"})
        assert config.qr_rotation == 15
        assert config.qr_dot_shape == "diamond"
        assert config.base_preset == "material-unified"

    def test_alias(self):
        config = config_from_dict({"lightModuleMaxOpacity": 0.1})
        assert config.module_max_opacity == 0.1

    def test_null_keeps_default(self):
        assert config_from_dict({"sporeCount": None}).spore_count == SporeFieldConfig().spore_count

    def test_unknown_key(self):
        with pytest.raises(InvalidConfigError, match="bogus"):
            config_from_dict({"bogus": 1})

    def test_nested_must_be_object(self):
        with pytest.raises(InvalidConfigError):
            config_from_dict({"baseLayer": 3})

    def test_load_config_unwraps_export(self, tmp_path):
        path = tmp_path / "seal.json"
        path.write_text(json.dumps({"config": {"basePreset": "module-masked", "qrScale": 0.9}}))
        config = load_config(path)
        assert config.base_preset == "module-masked"
        assert config.qr_scale == 0.9


class TestValidation:

    @pytest.mark.parametrize("changes,fragment", [
        ({"spore_count": 10}, "spore_count"),
        ({"min_opacity": 0.9, "max_opacity": 0.2}, "min_opacity"),
        ({"zone_a_end": 0.8, "zone_b_end": 0.5}, "zone_a_end"),
        ({"qr_scale": 3.0}, "qr_scale"),
        ({"qr_rotation": 400}, "qr_rotation"),
        ({"qr_dot_shape": "star"}, "qr_dot_shape"),
        ({"qr_dot_color": "black"}, "qr_dot_color"),
        ({"qr_error_correction": 5}, "qr_error_correction"),
        ({"dark_module_policy": "keep"}, "dark_module_policy"),
        ({"finder_exclusion_multiplier": 0.5}, "finder_exclusion_multiplier"),
    ])
    def test_rejects(self, changes, fragment):
        errors = validate_config(SporeFieldConfig(**changes))
        assert any(fragment in e for e in errors)

    def test_ensure_valid_raises_value_error(self):
        with pytest.raises(ValueError):
            ensure_valid(SporeFieldConfig(spore_count=10))

    def test_ensure_valid_returns_config(self):
        config = SporeFieldConfig()
        assert ensure_valid(config) is config

    def test_json_is_stable(self):
        assert SporeFieldConfig().to_json() == SporeFieldConfig().to_json()
        assert json.loads(SporeFieldConfig().to_json())["base_layer"]["text_ring"]["opacity"] == 0.9
