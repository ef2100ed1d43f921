"""Encoded matrix producer: wrap the qrcode encoder behind a percentage-based ECC selector."""

from dataclasses import dataclass
from enum import Enum

import qrcode
import qrcode.constants
import qrcode.util
from qrcode.exceptions import DataOverflowError

from sporeseal.errors import EncodingCapacityError
from sporeseal.logging import audit, get_logger, trace

log = get_logger("encoder")

SEAL_URL_PREFIX = "https://verify.sporeseal.io/s/"

# Standard QR finder pattern is 7x7 modules
FINDER_SIZE = 7

# Midpoints between the recovery rates of adjacent levels (7, 15, 25, 30).
# A value sitting exactly on a midpoint resolves to the stronger level.
ECC_THRESHOLD_L_M = 11.0
ECC_THRESHOLD_M_Q = 20.0
ECC_THRESHOLD_Q_H = 27.5

ECC_PERCENT_MIN = 7.0
ECC_PERCENT_MAX = 30.0


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}
ECC_PERCENT = {ECCLevel.L: 7, ECCLevel.M: 15, ECCLevel.Q: 25, ECCLevel.H: 30}

MODE_NAMES = {
    qrcode.util.MODE_NUMBER: "numeric",
    qrcode.util.MODE_ALPHA_NUM: "alphanumeric",
    qrcode.util.MODE_8BIT_BYTE: "byte",
    qrcode.util.MODE_KANJI: "kanji",
}


@dataclass
class EncodedMatrix:
    """Square boolean module grid (True = dark) plus how it was encoded."""
    modules: list[list[bool]]
    size: int
    level: ECCLevel
    version: int
    payload: str
    mode: str = "byte"


def resolve_error_level(percent: float) -> ECCLevel:
    """Bucket an error-correction percentage in [7, 30] to a QR level.

    Raises:
        ValueError: if the percentage is outside [7, 30].
    """
    if not (ECC_PERCENT_MIN <= percent <= ECC_PERCENT_MAX):
        raise ValueError(
            f"error correction must be between {ECC_PERCENT_MIN:g} and {ECC_PERCENT_MAX:g} percent, got {percent}"
        )
    if percent < ECC_THRESHOLD_L_M:
        return ECCLevel.L
    if percent < ECC_THRESHOLD_M_Q:
        return ECCLevel.M
    if percent < ECC_THRESHOLD_Q_H:
        return ECCLevel.Q
    return ECCLevel.H


def seal_payload(token: str) -> str:
    """The string a seal's QR pattern carries for a token."""
    return f"{SEAL_URL_PREFIX}{token}"


@trace
def encode(payload: str, error_correction_percent: float = 15.0) -> EncodedMatrix:
    """Encode a payload into a QR module matrix without rendering.

    The QR version is the smallest that fits the payload at the resolved
    level; the mask pattern is the library's own deterministic choice.

    Raises:
        EncodingCapacityError: if the payload does not fit in version 40.
    """
    level = resolve_error_level(error_correction_percent)
    qr = qrcode.QRCode(
        version=None,
        error_correction=level.value,
        box_size=1,
        border=0,
    )
    # One segment for the whole payload
    qr.add_data(payload, optimize=0)
    try:
        qr.make(fit=True)
    except DataOverflowError as e:
        raise EncodingCapacityError(len(payload.encode("utf-8")), level.name) from e

    modules = [[bool(cell) for cell in row] for row in qr.modules]
    size = len(modules)
    mode = MODE_NAMES[qr.data_list[0].mode]
    audit("matrix.encoded", logger=log,
          payload_bytes=len(payload.encode("utf-8")), version=qr.version,
          size=f"{size}x{size}", ecc=level.name, ecc_percent=error_correction_percent, mode=mode)
    return EncodedMatrix(modules=modules, size=size, level=level, version=qr.version, payload=payload, mode=mode)


def finder_origins(size: int) -> list[tuple[int, int]]:
    """Top-left (row, col) of the three finder regions: TL, TR, BL."""
    return [(0, 0), (0, size - FINDER_SIZE), (size - FINDER_SIZE, 0)]


def is_finder_cell(row: int, col: int, size: int) -> bool:
    """True if (row, col) lies inside one of the three 7x7 finder regions."""
    if row < FINDER_SIZE and col < FINDER_SIZE:
        return True
    if row < FINDER_SIZE and col >= size - FINDER_SIZE:
        return True
    if row >= size - FINDER_SIZE and col < FINDER_SIZE:
        return True
    return False
