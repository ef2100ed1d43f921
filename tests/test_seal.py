"""End-to-end seal generation scenarios."""

import dataclasses
import re
from xml.etree import ElementTree as ET

import pytest

from sporeseal import seal as seal_module
from sporeseal import texture
from sporeseal.compositor import strip_metadata
from sporeseal.config import RingStyle, SporeFieldConfig
from sporeseal.errors import ConfigurationIntegrityError, InvalidConfigError
from sporeseal.seal import SEAL_VERSION, build_seal, generate_seal

_HREF = re.compile(r'href="(data:image/png;base64,[^"]+)"')


class TestScenarios:

    def test_abc123_v1(self):
        artifact = build_seal("abc123", "v1")
        svg = artifact.svg
        assert svg.count('class="finder-marker"') == 3
        assert artifact.shape_count > 0
        assert "sealVersion: v1" in svg
        assert 'id="spore-field"' in svg
        assert artifact.texture is not None
        assert artifact.metadata["encoding"]["ecc"] == "M"

    def test_default_version(self):
        assert SEAL_VERSION == "v1"
        assert generate_seal("abc123") == generate_seal("abc123", "v1")

    def test_bytes_are_utf8_svg(self):
        data = generate_seal("abc123")
        assert isinstance(data, bytes)
        assert "<svg" in data.decode("utf-8")

    def test_error_correction_extremes(self):
        low = build_seal("abc123", config=SporeFieldConfig(qr_error_correction=7))
        high = build_seal("abc123", config=SporeFieldConfig(qr_error_correction=30))
        assert low.matrix.size != high.matrix.size
        assert low.shape_count != high.shape_count
        assert low.matrix.payload == high.matrix.payload

    def test_error_correction_extremes_decode(self):
        verify = pytest.importorskip("sporeseal.verify")
        for percent in (7, 30):
            artifact = build_seal("abc123", config=SporeFieldConfig(qr_error_correction=percent))
            image = verify.matrix_to_image(artifact.matrix.modules)
            result = verify.scan_opencv(image)
            assert result.success
            assert result.decoded_data == artifact.matrix.payload

    def test_dashed_version_is_well_formed(self):
        artifact = build_seal("abc123", "v1---rc", SporeFieldConfig(spore_count=2000))
        ET.fromstring(artifact.svg.split("\n", 1)[1])
        assert "sealVersion: v1- - -rc" in artifact.svg

    def test_numeric_token_reports_byte_mode(self):
        artifact = build_seal("1" * 32, config=SporeFieldConfig(spore_count=2000))
        assert artifact.matrix.mode == "byte"
        assert artifact.metadata["encoding"]["mode"] == "byte"


class TestDeterminism:

    def test_identical_bytes(self):
        config = SporeFieldConfig(spore_count=10000)
        assert generate_seal("tok-1", "v1", config) == generate_seal("tok-1", "v1", config)

    def test_token_changes_output(self):
        config = SporeFieldConfig(spore_count=10000)
        a = strip_metadata(generate_seal("tok-1", "v1", config).decode())
        b = strip_metadata(generate_seal("tok-2", "v1", config).decode())
        assert a != b

    def test_version_changes_texture(self):
        config = SporeFieldConfig(spore_count=10000)
        a = _HREF.search(generate_seal("tok-1", "v1", config).decode()).group(1)
        b = _HREF.search(generate_seal("tok-1", "v2", config).decode()).group(1)
        assert a != b

    def test_restyle_keeps_texture(self):
        plain = SporeFieldConfig(spore_count=10000)
        restyled = dataclasses.replace(
            plain,
            base_layer=dataclasses.replace(plain.base_layer, outer_ring=RingStyle(color="#336699")),
        )
        a = build_seal("tok-1", config=plain)
        b = build_seal("tok-1", config=restyled)
        assert _HREF.search(a.svg).group(1) == _HREF.search(b.svg).group(1)
        assert a.svg != b.svg


class TestFailures:

    def test_corrupt_base_fails_before_encoding(self, template_copy, monkeypatch):
        from sporeseal.template import TemplateLoader

        template_copy.write_bytes(template_copy.read_bytes() + b" ")
        calls = []
        monkeypatch.setattr(seal_module, "encode", lambda *a, **k: calls.append(a))
        monkeypatch.setattr(seal_module.texture, "generate", lambda *a, **k: calls.append(a))

        with pytest.raises(ConfigurationIntegrityError):
            build_seal("abc123", loader=TemplateLoader(template_copy))
        assert calls == []

    def test_texture_failure_composes_without_layer(self, monkeypatch):
        def broken(particles, cfg):
            raise OSError("no encoder")

        monkeypatch.setattr(texture, "_rasterize", broken)
        artifact = build_seal("abc123", config=SporeFieldConfig(spore_count=5000))
        assert artifact.texture is None
        assert 'id="spore-field"' not in artifact.svg
        assert "texture: none" in artifact.svg
        assert artifact.svg.count('class="finder-marker"') == 3

    def test_invalid_config(self):
        with pytest.raises(InvalidConfigError):
            build_seal("abc123", config=SporeFieldConfig(qr_error_correction=45))

    def test_empty_token(self):
        with pytest.raises(ValueError):
            build_seal("")
