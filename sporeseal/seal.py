"""Seal pipeline: token -> seed -> matrix -> dot pattern + spore field -> composed SVG.

Same (token, version, config) always produces the same bytes. The base
template is validated before any encoding or texture work starts, so a
corrupted template fails with no partial output.
"""

from dataclasses import dataclass

from sporeseal import texture
from sporeseal.compositor import compose
from sporeseal.config import SporeFieldConfig, ensure_valid
from sporeseal.encoder import EncodedMatrix, encode, seal_payload
from sporeseal.logging import audit, get_logger, trace
from sporeseal.renderer import PatternOptions, qr_radius, render, rendering_metadata
from sporeseal.seed import config_fingerprint, derive_seed
from sporeseal.template import TemplateLoader, default_loader

log = get_logger("seal")

SEAL_VERSION = "v1"
SEED_PREFIX_LENGTH = 16


@dataclass
class SealArtifact:
    """A composed seal plus what went into it."""
    svg: str
    metadata: dict
    matrix: EncodedMatrix
    shape_count: int
    texture: dict | None

    def to_bytes(self) -> bytes:
        return self.svg.encode("utf-8")


@trace
def build_seal(
    token: str,
    version: str = SEAL_VERSION,
    config: SporeFieldConfig | None = None,
    loader: TemplateLoader | None = None,
) -> SealArtifact:
    """Generate a seal and return it with its structured metadata.

    Args:
        token: Opaque identifier the seal is bound to.
        version: Seal format version; part of the seed.
        config: Effective settings. Defaults to the material-unified preset.
        loader: Template loader; defaults to the process-wide one.

    Raises:
        ConfigurationIntegrityError: base template missing or tampered with.
        EncodingCapacityError: payload too large for the selected level.
        EmptyPatternError: matrix produced no drawable modules.
        InvalidConfigError: config out of range.
        ValueError: empty token.
    """
    config = ensure_valid(config or SporeFieldConfig())
    base = (loader or default_loader()).load()

    seed = derive_seed(token, version)
    matrix = encode(seal_payload(token), config.qr_error_correction)

    options = PatternOptions.from_config(config)
    pattern = render(matrix.modules, matrix.size, qr_radius(config.qr_scale), options)

    layer = texture.generate(seed, pattern.geometry, config)
    if layer is None:
        log.warning("composing seal without texture layer (token seed %s)", seed[:SEED_PREFIX_LENGTH])

    metadata = {
        "sealVersion": version,
        "seed": seed[:SEED_PREFIX_LENGTH],
        "baseChecksum": base.checksum[:SEED_PREFIX_LENGTH],
        "configHash": config_fingerprint(config),
        "encoding": {
            "mode": matrix.mode,
            "ecc": matrix.level.name,
            "eccPercent": config.qr_error_correction,
            "qrVersion": matrix.version,
            "modules": matrix.size,
        },
        "finderStyle": "radar-concentric",
        "rendering": rendering_metadata(options),
        "shapes": pattern.shape_count,
    }
    svg = compose(base, layer, pattern.markup, config, metadata)

    audit("seal.generated", logger=log,
          version=version, seed=seed[:8], size=f"{matrix.size}x{matrix.size}", ecc=matrix.level.name,
          shapes=pattern.shape_count, texture=layer is not None, svg_bytes=len(svg))
    return SealArtifact(
        svg=svg,
        metadata=metadata,
        matrix=matrix,
        shape_count=pattern.shape_count,
        texture=layer.metadata if layer is not None else None,
    )


def generate_seal(token: str, version: str = SEAL_VERSION, config: SporeFieldConfig | None = None) -> bytes:
    """The seal for ``token`` as UTF-8 SVG bytes."""
    return build_seal(token, version, config).to_bytes()
