"""Tests for scan verification helpers (need OpenCV and ZBar)."""

import pytest

verify = pytest.importorskip("sporeseal.verify")

from sporeseal.encoder import encode, seal_payload  # noqa: E402


@pytest.fixture
def encoded():
    return encode(seal_payload("abc123"), 15)


class TestRasterHelpers:

    def test_matrix_image_size(self, encoded):
        img = verify.matrix_to_image(encoded.modules, box_size=10, border=4)
        assert img.size == ((encoded.size + 8) * 10, (encoded.size + 8) * 10)
        # Quiet zone is white, first finder module is black
        assert img.getpixel((5, 5)) == (255, 255, 255)
        assert img.getpixel((45, 45)) == (0, 0, 0)

    def test_pattern_image_finder_centre_dark(self, encoded):
        box = 12
        img = verify.pattern_to_image(encoded.modules, box_size=box, border=4)
        centre = int(4 * box + 3.5 * box)
        assert img.getpixel((centre, centre)) == (0, 0, 0)

    def test_pattern_image_finder_bands(self, encoded):
        box = 12
        img = verify.pattern_to_image(encoded.modules, box_size=box, border=4)
        centre = int(4 * box + 3.5 * box)
        # Light gap, dark ring, then the light separator outside the 7x7 region
        assert img.getpixel((centre + 2 * box, centre)) == (255, 255, 255)
        assert img.getpixel((centre + 3 * box, centre)) == (0, 0, 0)
        assert img.getpixel((centre + 4 * box, centre)) == (255, 255, 255)

    def test_rotate_identity(self, encoded):
        img = verify.matrix_to_image(encoded.modules)
        assert verify.rotate_image(img, 0) is img


class TestScanning:

    def test_plain_modules_decode(self, encoded):
        results = verify.verify(verify.matrix_to_image(encoded.modules), expected_data=encoded.payload)
        assert any(r.success for r in results)
        for r in results:
            if r.success:
                assert r.decoded_data == encoded.payload

    def test_mismatch_fails(self, encoded):
        results = verify.verify(verify.matrix_to_image(encoded.modules), expected_data="something else")
        assert not any(r.success for r in results)

    def test_verify_token_reports(self):
        outcome = verify.verify_token("abc123")
        assert outcome.payload == seal_payload("abc123")
        assert len(outcome.module_results) == 2
        assert len(outcome.pattern_results) == 2
        assert any(r.success for r in outcome.module_results)
        assert outcome.passed

    @pytest.mark.parametrize("shape", ["circle", "diamond"])
    @pytest.mark.parametrize("percent", [7, 15, 30])
    def test_dot_pattern_decodes(self, shape, percent):
        matrix = encode(seal_payload("abc123"), percent)
        img = verify.pattern_to_image(matrix.modules, dot_shape=shape)
        results = verify.verify(img, expected_data=matrix.payload)
        assert any(r.success for r in results), [r.error for r in results]

