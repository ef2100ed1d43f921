"""Scan verification: rasterise a seal's pattern and check that real decoders read it back."""

import math
import time
from dataclasses import dataclass, field

import cv2
import numpy as np
from PIL import Image, ImageDraw
from pyzbar.pyzbar import decode as pyzbar_decode

from sporeseal.config import SporeFieldConfig, ensure_valid
from sporeseal.encoder import FINDER_SIZE, EncodedMatrix, encode, finder_origins, is_finder_cell, seal_payload
from sporeseal.logging import audit, get_logger, trace
from sporeseal.renderer import FINDER_DOT_RADIUS, FINDER_RING_INSET, FINDER_RING_STROKE

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


@dataclass
class TokenVerification:
    """Scan results for one token, on plain modules and on the dot pattern."""
    payload: str
    matrix: EncodedMatrix
    module_results: list[ScanResult] = field(default_factory=list)
    pattern_results: list[ScanResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return any(r.success for r in self.pattern_results)


def matrix_to_image(modules: list[list[bool]], box_size: int = 10, border: int = 4) -> Image.Image:
    """Plain square-module rendering of a matrix, with a quiet zone."""
    size = len(modules)
    grid = np.array(modules, dtype=bool)
    padded = np.zeros((size + 2 * border, size + 2 * border), dtype=bool)
    padded[border:border + size, border:border + size] = grid
    pixels = np.where(padded, 0, 255).astype(np.uint8)
    pixels = np.kron(pixels, np.ones((box_size, box_size), dtype=np.uint8))
    return Image.fromarray(pixels).convert("RGB")


def pattern_to_image(
    modules: list[list[bool]],
    box_size: int = 12,
    border: int = 4,
    dot_size: float = 0.84,
    dot_shape: str = "circle",
) -> Image.Image:
    """Raster the seal's dot pattern the way the SVG renderer lays it out.

    Data modules become circles or diamonds; each finder becomes a ring
    plus centre dot.
    """
    size = len(modules)
    side = (size + 2 * border) * box_size
    img = Image.new("RGB", (side, side), (255, 255, 255))
    draw = ImageDraw.Draw(img)
    origin = border * box_size
    r = box_size * dot_size / 2

    for row in range(size):
        for col in range(size):
            if is_finder_cell(row, col, size) or not modules[row][col]:
                continue
            cx = origin + (col + 0.5) * box_size
            cy = origin + (row + 0.5) * box_size
            if dot_shape == "diamond":
                draw.polygon([(cx, cy - r), (cx + r, cy), (cx, cy + r), (cx - r, cy)], fill=(0, 0, 0))
            else:
                draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=(0, 0, 0))

    ring_r = FINDER_SIZE * box_size / 2 - box_size * FINDER_RING_INSET
    stroke = max(1, round(box_size * FINDER_RING_STROKE))
    dot_r = box_size * FINDER_DOT_RADIUS
    for orig_r, orig_c in finder_origins(size):
        cx = origin + (orig_c + FINDER_SIZE / 2) * box_size
        cy = origin + (orig_r + FINDER_SIZE / 2) * box_size
        outer = ring_r + stroke / 2
        draw.ellipse([cx - outer, cy - outer, cx + outer, cy + outer], outline=(0, 0, 0), width=stroke)
        draw.ellipse([cx - dot_r, cy - dot_r, cx + dot_r, cy + dot_r], fill=(0, 0, 0))
    return img


def rotate_image(image: Image.Image, degrees: float) -> Image.Image:
    """Rotate with a white fill, matching a seal's pattern rotation."""
    if degrees % 360 == 0:
        return image
    return image.rotate(-degrees, expand=True, fillcolor=(255, 255, 255), resample=Image.Resampling.BICUBIC)


@trace
def scan_pyzbar(image: Image.Image) -> ScanResult:
    """Scan a QR code using pyzbar (wraps ZBar)."""
    start = time.perf_counter()
    try:
        results = pyzbar_decode(image)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder="pyzbar/zbar", error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar/zbar", error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if results:
        data = results[0].data.decode("utf-8", errors="replace")
        audit("scan.verified", logger=log, decoder="pyzbar/zbar", success=True, time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="pyzbar/zbar")
    audit("scan.verified", logger=log, decoder="pyzbar/zbar", success=False, time_ms=round(elapsed, 1))
    return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar/zbar", error="No QR code detected")


@trace
def scan_opencv(image: Image.Image) -> ScanResult:
    """Scan a QR code using OpenCV's built-in QR detector."""
    start = time.perf_counter()
    try:
        gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)
        data, _points, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    except cv2.error as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder="opencv", error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv", error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if data:
        audit("scan.verified", logger=log, decoder="opencv", success=True, time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="opencv")
    audit("scan.verified", logger=log, decoder="opencv", success=False, time_ms=round(elapsed, 1))
    return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv", error="No QR code detected")


@trace
def verify(image: Image.Image, expected_data: str | None = None) -> list[ScanResult]:
    """Run both decoders on an image.

    Args:
        image: PIL Image containing a QR code.
        expected_data: If provided, a decode of anything else counts as a failure.

    Returns:
        List of ScanResults, one per decoder.
    """
    results = []
    for scanner in (scan_pyzbar, scan_opencv):
        result = scanner(image)
        if result.success and expected_data and result.decoded_data != expected_data:
            result.success = False
            result.error = f"Data mismatch: got '{result.decoded_data}', expected '{expected_data}'"
        results.append(result)
    return results


@trace
def verify_token(token: str, config: SporeFieldConfig | None = None) -> TokenVerification:
    """Encode a token as its seal would and scan-check both renderings."""
    config = ensure_valid(config or SporeFieldConfig())
    payload = seal_payload(token)
    matrix = encode(payload, config.qr_error_correction)

    # Keep at least a few pixels per module whatever the version
    box = max(8, math.ceil(400 / matrix.size))
    plain = matrix_to_image(matrix.modules, box_size=box)
    dots = pattern_to_image(matrix.modules, box_size=box,
                            dot_size=config.qr_dot_size, dot_shape=config.qr_dot_shape)
    dots = rotate_image(dots, config.qr_rotation)

    outcome = TokenVerification(
        payload=payload,
        matrix=matrix,
        module_results=verify(plain, expected_data=payload),
        pattern_results=verify(dots, expected_data=payload),
    )
    audit("token.verified", logger=log,
          size=f"{matrix.size}x{matrix.size}", ecc=matrix.level.name, passed=outcome.passed)
    return outcome
