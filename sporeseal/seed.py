"""Seed derivation: collapse (token, version) into the digest behind every random draw."""

import hashlib
import json

from sporeseal.config import SporeFieldConfig

# Config fields that change the texture. Base-layer styling is left out so a
# restyled seal keeps the exact same spore field.
TEXTURE_FIELDS = (
    "base_preset",
    "spore_count",
    "min_opacity",
    "max_opacity",
    "zone_a_end",
    "zone_b_end",
    "quiet_core_factor",
    "edge_buffer_factor",
    "light_module_density",
    "module_max_opacity",
    "finder_exclusion_multiplier",
    "dark_module_policy",
    "spore_radius_min_factor",
    "spore_radius_max_factor",
    "module_contrast_boost",
    "qr_scale",
)


def derive_seed(token: str, version: str) -> str:
    """SHA-256 hex digest of ``token|version``.

    Raises:
        ValueError: if the token is empty.
    """
    if not token or not token.strip():
        raise ValueError("token must be a non-empty string")
    return hashlib.sha256(f"{token}|{version}".encode("utf-8")).hexdigest()


def seed_to_int(seed: str) -> int:
    """First 128 bits of a hex digest as an integer, for numpy's PCG64."""
    return int(seed[:32], 16)


def config_fingerprint(config: SporeFieldConfig) -> str:
    """8 hex chars identifying the texture-relevant part of a config."""
    relevant = {name: getattr(config, name) for name in TEXTURE_FIELDS}
    blob = json.dumps(relevant, sort_keys=True, separators=(",", ":"))
    return hashlib.md5(blob.encode("utf-8"), usedforsecurity=False).hexdigest()[:8]


def texture_seed(seed: str, config: SporeFieldConfig) -> str:
    """Seed for the spore field: the token seed mixed with the config fingerprint."""
    return hashlib.sha256(f"{seed}|{config_fingerprint(config)}".encode("utf-8")).hexdigest()
