"""Tests for error-correction bucketing and matrix encoding."""

import pytest

from sporeseal.encoder import (
    ECCLevel,
    encode,
    finder_origins,
    is_finder_cell,
    resolve_error_level,
    seal_payload,
)
from sporeseal.errors import EncodingCapacityError, SealError


class TestResolveErrorLevel:

    @pytest.mark.parametrize("percent,level", [
        (7, ECCLevel.L),
        (10.99, ECCLevel.L),
        (11, ECCLevel.M),
        (15, ECCLevel.M),
        (19.99, ECCLevel.M),
        (20, ECCLevel.Q),
        (25, ECCLevel.Q),
        (27.49, ECCLevel.Q),
        (27.5, ECCLevel.H),
        (30, ECCLevel.H),
    ])
    def test_buckets(self, percent, level):
        assert resolve_error_level(percent) is level

    @pytest.mark.parametrize("percent", [0, 6.99, 30.01, 100])
    def test_out_of_range(self, percent):
        with pytest.raises(ValueError):
            resolve_error_level(percent)


class TestEncode:

    def test_payload_prefix(self):
        assert seal_payload("abc123").endswith("/s/abc123")
        assert seal_payload("abc123").startswith("https://")

    def test_matrix_shape(self):
        m = encode(seal_payload("abc123"), 15)
        assert m.size == 17 + 4 * m.version
        assert len(m.modules) == m.size
        assert all(len(row) == m.size for row in m.modules)
        assert m.level is ECCLevel.M

    def test_deterministic(self):
        a = encode(seal_payload("abc123"), 30)
        b = encode(seal_payload("abc123"), 30)
        assert a.modules == b.modules

    def test_higher_correction_grows_matrix(self):
        low = encode(seal_payload("abc123"), 7)
        high = encode(seal_payload("abc123"), 30)
        assert low.level is ECCLevel.L
        assert high.level is ECCLevel.H
        assert high.size > low.size

    def test_capacity_boundary_at_h(self):
        m = encode("a" * 1273, 30)
        assert m.version == 40
        assert m.size == 177

    def test_capacity_exceeded_at_h(self):
        with pytest.raises(EncodingCapacityError) as exc:
            encode("a" * 1274, 30)
        assert exc.value.payload_bytes == 1274
        assert exc.value.level == "H"
        assert isinstance(exc.value, SealError)

    def test_digit_run_stays_in_one_segment(self):
        digits = encode(seal_payload("1" * 40), 15)
        letters = encode(seal_payload("a" * 40), 15)
        assert digits.mode == "byte"
        assert digits.version == letters.version

    def test_mode_reflects_payload(self):
        assert encode("12345678901234567890", 15).mode == "numeric"
        assert encode("HELLO WORLD", 15).mode == "alphanumeric"
        assert encode(seal_payload("abc123"), 15).mode == "byte"


class TestFinderCells:

    def test_origins(self):
        assert finder_origins(21) == [(0, 0), (0, 14), (14, 0)]

    @pytest.mark.parametrize("row,col,expected", [
        (0, 0, True),
        (6, 6, True),
        (7, 7, False),
        (0, 20, True),
        (20, 0, True),
        (20, 20, False),
        (10, 10, False),
    ])
    def test_membership(self, row, col, expected):
        assert is_finder_cell(row, col, 21) is expected
