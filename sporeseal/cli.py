"""sporeseal CLI: generate seals, scan-check tokens, inspect presets and templates."""

import argparse
import dataclasses
import json
import sys
from pathlib import Path

from sporeseal.config import (
    DARK_MODULE_POLICIES,
    DOT_SHAPES,
    PRESET_DESCRIPTIONS,
    PRESETS,
    SporeFieldConfig,
    config_from_dict,
    ensure_valid,
    load_config,
)
from sporeseal.encoder import ECC_NAMES, ECC_PERCENT
from sporeseal.errors import InvalidConfigError, SealError
from sporeseal.logging import audit, get_logger, setup_logging

log = get_logger("cli")

EXIT_OK = 0
EXIT_SCAN_FAILED = 1
EXIT_ERROR = 2


def _build_config(args) -> SporeFieldConfig:
    """Preset/config file first, then individual flag overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = config_from_dict({"base_preset": args.preset})

    overrides = {}
    if args.ecc is not None:
        overrides["qr_error_correction"] = float(ECC_PERCENT[ECC_NAMES[args.ecc]])
    if args.error_correction is not None:
        overrides["qr_error_correction"] = args.error_correction
    if args.rotation is not None:
        overrides["qr_rotation"] = args.rotation
    if args.dot_shape is not None:
        overrides["qr_dot_shape"] = args.dot_shape
    if args.dot_color is not None:
        overrides["qr_dot_color"] = args.dot_color
    if args.scale is not None:
        overrides["qr_scale"] = args.scale
    if args.spores is not None:
        overrides["spore_count"] = args.spores
    if getattr(args, "dark_modules", None) is not None:
        overrides["dark_module_policy"] = args.dark_modules
    if getattr(args, "lines_above", False):
        layer = config.base_layer
        overrides["base_layer"] = dataclasses.replace(
            layer, radar_lines=dataclasses.replace(layer.radar_lines, above_qr=True))

    return ensure_valid(dataclasses.replace(config, **overrides))


def cmd_generate(args):
    """Generate a seal SVG for a token."""
    from sporeseal.seal import build_seal

    config = _build_config(args)
    artifact = build_seal(args.token, version=args.seal_version, config=config)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(artifact.to_bytes())

    m = artifact.matrix
    print(f"Generated: {output} ({len(artifact.svg)} bytes)")
    print(f"  QR: version {m.version}, {m.size}x{m.size}, ECC {m.level.name}, {artifact.shape_count} dots")
    if artifact.texture is not None:
        t = artifact.texture
        print(f"  Spores: {t['accepted']}/{t['samples']} accepted, {t['masked']} masked ({t['basePreset']})")
    else:
        print("  Spores: none (texture unavailable)")

    if args.metadata:
        meta_path = Path(args.metadata)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        record = {**artifact.metadata, "texture": artifact.texture, "config": config.to_dict()}
        meta_path.write_text(json.dumps(record, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        print(f"  Metadata: {meta_path}")


def cmd_verify(args):
    """Scan-check a token's pattern with pyzbar and OpenCV."""
    from sporeseal.verify import verify_token

    config = _build_config(args)
    outcome = verify_token(args.token, config)

    m = outcome.matrix
    print(f"Payload: {outcome.payload}")
    print(f"  QR: version {m.version}, {m.size}x{m.size}, ECC {m.level.name}")
    for label, results in (("modules", outcome.module_results), ("pattern", outcome.pattern_results)):
        for r in results:
            status = "PASS" if r.success else "FAIL"
            print(f"  {label:8s}[{r.decoder:12s}] {status} | {r.decode_time_ms:6.1f}ms | {r.decoded_data or r.error}")

    sys.exit(EXIT_OK if outcome.passed else EXIT_SCAN_FAILED)


def cmd_presets(args):
    """List base presets and their defaults."""
    for name, preset in PRESETS.items():
        print(f"{name}: {PRESET_DESCRIPTIONS[name]}")
        if args.verbose_presets:
            for key, value in preset.to_dict().items():
                if key != "base_layer":
                    print(f"    {key:28s} {value}")


def cmd_checksum(args):
    """Print the SHA-256 of a template file."""
    from sporeseal.template import SEAL_BASE_SVG_CHECKSUM, SEAL_BASE_SVG_PATH, compute_checksum

    path = Path(args.template) if args.template else SEAL_BASE_SVG_PATH
    digest = compute_checksum(path.read_bytes())
    print(f"{digest}  {path}")
    if not args.template:
        match = "matches" if digest == SEAL_BASE_SVG_CHECKSUM else "DOES NOT match"
        print(f"  {match} the built-in checksum")


def _add_config_flags(p):
    p.add_argument("--preset", default="material-unified", choices=list(PRESETS), help="Base preset")
    p.add_argument("--config", default=None, help="JSON config file (overrides --preset)")
    p.add_argument("-e", "--ecc", default=None, choices=list(ECC_NAMES), help="Error correction level")
    p.add_argument("--error-correction", type=float, default=None, help="Error correction percent (7-30)")
    p.add_argument("--rotation", type=float, default=None, help="Pattern rotation in degrees")
    p.add_argument("--dot-shape", default=None, choices=list(DOT_SHAPES), help="Data module shape")
    p.add_argument("--dot-color", default=None, help="Data module colour (hex e.g. '#1a2b3c')")
    p.add_argument("--scale", type=float, default=None, help="Pattern scale (0.5-1.5)")
    p.add_argument("--spores", type=int, default=None, help="Spore sample count")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sporeseal", description="Deterministic seal generator")

    # Global logging flags
    parser.add_argument("-V", "--verbose", action="store_true", help="Enable DEBUG-level logging")
    parser.add_argument("--log-file", default=None, help="Write JSON logs to file")
    parser.add_argument("--json-logs", action="store_true", help="JSON lines on the console")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- generate ---
    p_gen = subparsers.add_parser("generate", help="Generate a seal SVG")
    p_gen.add_argument("token", help="Token the seal is bound to")
    p_gen.add_argument("-o", "--output", default="output/seal.svg", help="Output SVG path")
    p_gen.add_argument("--seal-version", default="v1", help="Seal format version")
    p_gen.add_argument("--metadata", default=None, help="Also write metadata JSON here")
    p_gen.add_argument("--dark-modules", default=None, choices=list(DARK_MODULE_POLICIES),
                       help="Spores on dark modules: reject or dim")
    p_gen.add_argument("--lines-above", action="store_true", help="Draw radar lines above the pattern")
    _add_config_flags(p_gen)

    # --- verify ---
    p_ver = subparsers.add_parser("verify", help="Scan-check a token's pattern")
    p_ver.add_argument("token", help="Token to encode and scan")
    _add_config_flags(p_ver)

    # --- presets ---
    p_pre = subparsers.add_parser("presets", help="List base presets")
    p_pre.add_argument("-a", "--all", dest="verbose_presets", action="store_true", help="Show every default")

    # --- checksum ---
    p_sum = subparsers.add_parser("checksum", help="Print a template's SHA-256")
    p_sum.add_argument("template", nargs="?", default=None, help="Template path (built-in if omitted)")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    level = "DEBUG" if args.verbose else "INFO"
    setup_logging(level=level, log_file=args.log_file, json_format=args.json_logs)
    audit("cli.start", logger=log, command=args.command, verbose=args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_SCAN_FAILED)

    commands = {
        "generate": cmd_generate,
        "verify": cmd_verify,
        "presets": cmd_presets,
        "checksum": cmd_checksum,
    }
    try:
        commands[args.command](args)
    except InvalidConfigError as e:
        print(f"Invalid config: {'; '.join(e.errors)}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except SealError as e:
        log.error("%s: %s", type(e).__name__, e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except OSError as e:
        log.error("%s: %s", type(e).__name__, e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    audit("cli.done", logger=log, command=args.command)


if __name__ == "__main__":
    main()
