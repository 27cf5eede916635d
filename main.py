from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse, unquote

from pixels import ImageDecodeError, decode
from presets import PRESETS, PresetRegistry
from refiner import active_stages, refine_preset, run_stages

# =============== Logging ===============
log = logging.getLogger("refiner")


def setup_logging(verbosity: int = 0) -> None:
    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(verbosity, 2)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )
    # UnknownPresetWarning and friends go through the same handler
    logging.captureWarnings(True)


# =============== Core: Input ===============
def read_source(src: str) -> Tuple[bytes, Optional[str]]:
    """Read input bytes from a local path or a file:// URL. Returns (raw, guessed mime type)."""
    parsed = urlparse(src)
    scheme = (parsed.scheme or "").lower()
    if scheme == "file":
        local_path = unquote(parsed.path)
        if os.name == "nt" and local_path.startswith("/"):
            local_path = local_path[1:]
    elif scheme == "" or (os.name == "nt" and len(scheme) == 1):
        local_path = src
    else:
        raise ValueError(f"Unsupported input scheme '{scheme}': pass a local path or file:// URL")

    p = Path(local_path)
    if not p.is_file():
        raise FileNotFoundError(f"Input file not found: {p}")
    return p.read_bytes(), mimetypes.guess_type(p.name)[0]


# =============== Small CLI helpers ===============
def _coerce(v: str) -> Any:
    if v.isdigit():
        return int(v)
    try:
        return float(v)
    except ValueError:
        low = v.lower()
        if low in ("true", "false"):
            return low == "true"
        if low in ("none", "null"):
            return None
    return v


def _parse_kv_pairs(pairs: Optional[List[str]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if not pairs:
        return out
    for p in pairs:
        if "=" not in p:
            raise ValueError(f"Expected key=value, got '{p}'")
        k, v = p.split("=", 1)
        out[k.strip()] = _coerce(v.strip())
    return out


def _infer_format_from_path(p: Path) -> str:
    ext = p.suffix.lower()
    if ext in (".jpg", ".jpeg"):
        return "JPEG"
    if ext == ".webp":
        return "WEBP"
    if ext in (".tif", ".tiff"):
        return "TIFF"
    return "PNG"


def _registry(presets_file: Optional[Path]) -> PresetRegistry:
    if presets_file is None:
        return PRESETS
    reg = PRESETS.copy()
    reg.load_file(presets_file)
    return reg


# =============== CLI ===============
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Post-process a generated image with a named refiner look.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v, -vv).")
    p.add_argument("--presets-file", type=Path, default=None,
                   help="JSON file of extra presets: {name: {field: value}}.")

    sub = p.add_subparsers(dest="cmd", required=True)

    lp = sub.add_parser("list", help="List presets.")
    lp.set_defaults(func=cmd_list)

    shp = sub.add_parser("show", help="Print a preset's fields and active stages as JSON.")
    shp.add_argument("name")
    shp.set_defaults(func=cmd_show)

    rp = sub.add_parser("run", help="Refine one image.")
    rp.add_argument("--url", required=True, help="Local path or file:// URL.")
    rp.add_argument("--preset", default="clean", help="Preset name (unknown names fall back to 'clean').")
    rp.add_argument("--out", type=Path, required=True, help="Output image file (png/webp/tiff, lossless).")
    rp.add_argument("--seed", type=int, default=None, help="Film grain RNG seed (optional).")
    rp.add_argument(
        "--extra",
        nargs="*",
        help=(
            "Preset overrides as k=v pairs, snake_case or camelCase "
            "(e.g. sharpen=1.3 filmGrain=true shadow_tint=250,252,255)."
        ),
    )
    rp.set_defaults(func=cmd_run)

    bp = sub.add_parser("bench", help="Micro-benchmark a preset on one image.")
    bp.add_argument("--url", required=True)
    bp.add_argument("--preset", default="clean")
    bp.add_argument("--runs", type=int, default=3)
    bp.add_argument("--extra", nargs="*")
    bp.set_defaults(func=cmd_bench)

    return p


# =============== Commands ===============
def cmd_list(args: argparse.Namespace) -> int:
    try:
        reg = _registry(args.presets_file)
    except (OSError, ValueError) as e:
        log.error("Invalid presets file: %s", e)
        return 1
    for name in reg.names():
        preset = reg.get(name)
        print(f"{name:<16} {preset.label}" + (f"  {preset.description}" if preset.description else ""))
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    try:
        preset = _registry(args.presets_file).get(args.name)
    except KeyError as e:
        log.error("%s", e.args[0])
        return 1
    except (OSError, ValueError) as e:
        log.error("Invalid presets file: %s", e)
        return 1
    data = preset.to_dict()
    data["stages"] = active_stages(preset)
    print(json.dumps(data, indent=2))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    try:
        preset = _registry(args.presets_file).resolve(args.preset)
        preset = preset.with_overrides(**_parse_kv_pairs(args.extra))
        fmt = _infer_format_from_path(args.out)

        raw, ctype = read_source(args.url)
        log.info("Input %s (%s, %d bytes)", args.url, ctype or "unknown type", len(raw))
        out = refine_preset(raw, preset, seed=args.seed, fmt=fmt)

        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_bytes(out)
        log.info("Saved %s (%s, %d bytes)", args.out, fmt, len(out))
        return 0

    except ImageDecodeError as e:
        log.error("Could not process image: %s", e)
        return 2
    except ValueError as e:
        log.error("Invalid configuration: %s", e)
        return 1
    except Exception as e:
        log.exception("Failed: %s", e)
        return 1


def cmd_bench(args: argparse.Namespace) -> int:
    try:
        preset = _registry(args.presets_file).resolve(args.preset)
        preset = preset.with_overrides(**_parse_kv_pairs(args.extra))
        raw, _ = read_source(args.url)
        src = decode(raw)

        times = []
        for _ in range(max(1, args.runs)):
            buf = src.copy()
            t0 = time.perf_counter()
            run_stages(buf, preset)
            times.append(time.perf_counter() - t0)
        avg = sum(times) / len(times)
        print(
            f"{preset.name} {src.width}x{src.height}: {len(times)} run(s), avg {avg*1000:.2f} ms, "
            f"min {min(times)*1000:.2f} ms, max {max(times)*1000:.2f} ms"
        )
        return 0
    except ImageDecodeError as e:
        log.error("Could not process image: %s", e)
        return 2
    except Exception as e:
        log.exception("Bench failed: %s", e)
        return 1


# =============== Entry ===============
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
