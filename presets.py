from __future__ import annotations

import json
import logging
import re
import warnings
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

log = logging.getLogger("refiner.presets")

__all__ = [
    "ColorGrade",
    "Tint",
    "Preset",
    "PresetRegistry",
    "UnknownPresetWarning",
    "BUILTIN_PRESETS",
    "DEFAULT_PRESET",
    "PRESETS",
    "resolve",
]

DEFAULT_PRESET = "clean"


class UnknownPresetWarning(UserWarning):
    """Requested preset is not registered; the default preset was used instead."""


class ColorGrade(Enum):
    NONE = "none"
    TEAL_ORANGE = "teal-orange"
    NATURAL = "natural"
    VIBRANT = "vibrant"


@dataclass(frozen=True)
class Tint:
    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        for ch in (self.r, self.g, self.b):
            if isinstance(ch, bool) or not isinstance(ch, (int, float)) or not 0 <= ch <= 255:
                raise ValueError(f"Tint channels must be numbers in 0..255, got {self!r}")

    @classmethod
    def parse(cls, value: Any) -> "Tint":
        """Accepts a Tint, a {r,g,b} mapping, a 3-sequence or an 'r,g,b' string."""
        if isinstance(value, Tint):
            return value
        if isinstance(value, dict):
            try:
                return cls(value["r"], value["g"], value["b"])
            except KeyError as e:
                raise ValueError(f"Tint mapping is missing channel {e}") from e
        if isinstance(value, str):
            value = [v.strip() for v in value.split(",")]
            try:
                value = [float(v) if "." in v else int(v) for v in value]
            except ValueError as e:
                raise ValueError(f"Invalid tint string: {e}") from e
        if isinstance(value, (list, tuple)) and len(value) == 3:
            return cls(*value)
        raise ValueError(f"Cannot interpret {value!r} as a tint")

    def as_tuple(self) -> tuple:
        return (self.r, self.g, self.b)


# Numeric fields that gate a stage: None (or 0) means the stage is skipped.
_OPTIONAL_AMOUNTS = (
    "shadow_lift",
    "highlight_recovery",
    "clarity_boost",
    "micro_contrast",
    "chromatic_aberration",
    "lens_distortion",
)
_FLAGS = ("vignette", "film_grain")
_TINTS = ("shadow_tint", "highlight_tint")
_META = ("label", "description")


@dataclass(frozen=True)
class Preset:
    """Immutable refiner look. Factors are multiplicative, amounts are additive/blend."""
    name: str
    label: str = ""
    description: str = ""

    sharpen: float = 1.0
    contrast: float = 1.0
    saturation: float = 1.0
    brightness: float = 1.0
    vibrance: float = 1.0

    shadow_lift: Optional[float] = None
    highlight_recovery: Optional[float] = None
    clarity_boost: Optional[float] = None
    micro_contrast: Optional[float] = None
    chromatic_aberration: Optional[float] = None
    lens_distortion: Optional[float] = None

    vignette: bool = False
    film_grain: bool = False
    color_grade: ColorGrade = ColorGrade.NONE

    shadow_tint: Optional[Tint] = None
    highlight_tint: Optional[Tint] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Preset":
        return cls(name=name.strip().lower(), **_normalize_fields(data))

    def with_overrides(self, **overrides: Any) -> "Preset":
        if not overrides:
            return self
        return replace(self, **_normalize_fields(overrides))

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["color_grade"] = self.color_grade.value
        for key in _TINTS:
            tint = getattr(self, key)
            out[key] = list(tint.as_tuple()) if tint is not None else None
        return out


_FIELD_NAMES = {f.name for f in fields(Preset)} - {"name"}


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key.strip()).lower().replace("-", "_")


def _normalize_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for raw_key, value in data.items():
        key = _snake(raw_key)
        if key == "name":
            # JSON preset files carry the display name under "name"
            key = "label"
        if key not in _FIELD_NAMES:
            raise ValueError(f"Unknown preset field '{raw_key}'")
        out[key] = _coerce_field(key, value)
    return out


def _coerce_field(key: str, value: Any) -> Any:
    if key in _META:
        return str(value)
    if key in _FLAGS:
        if isinstance(value, str):
            low = value.strip().lower()
            if low not in ("true", "false"):
                raise ValueError(f"{key} must be a boolean, got {value!r}")
            return low == "true"
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be a boolean, got {value!r}")
        return value
    if key == "color_grade":
        try:
            return value if isinstance(value, ColorGrade) else ColorGrade(str(value).strip().lower())
        except ValueError as e:
            options = ", ".join(g.value for g in ColorGrade)
            raise ValueError(f"color_grade must be one of: {options}") from e
    if key in _TINTS:
        return None if value is None else Tint.parse(value)
    if key in _OPTIONAL_AMOUNTS and value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)


# =============== Built-in looks (data) ===============
BUILTIN_PRESETS: Dict[str, Dict[str, Any]] = {
    "cinematic": {
        "label": "Cinematic Polish",
        "description": "Hollywood-grade color grading and enhancement",
        "sharpen": 1.2,
        "contrast": 1.1,
        "saturation": 1.15,
        "brightness": 1.02,
        "vignette": True,
        "film_grain": False,
        "color_grade": "teal-orange",
        "shadow_lift": 8,
        "highlight_recovery": -5,
    },
    "photorealistic": {
        "label": "Photorealistic Polish",
        "description": "Simulates a high-end camera & lens",
        "sharpen": 1.1,
        "contrast": 1.08,
        "saturation": 1.0,
        "brightness": 1.0,
        "vignette": True,
        "film_grain": False,
        "color_grade": "none",
        "micro_contrast": 1.05,
        "clarity_boost": 0.1,
        "shadow_lift": 5,
        "highlight_recovery": -3,
        "vibrance": 1.08,
        "chromatic_aberration": 0.2,
        "lens_distortion": 0.01,
        "shadow_tint": {"r": 250, "g": 252, "b": 255},
        "highlight_tint": {"r": 255, "g": 253, "b": 250},
    },
    "artistic": {
        "label": "Artistic Boost",
        "description": "Bold colors and dramatic enhancement",
        "sharpen": 1.4,
        "contrast": 1.2,
        "saturation": 1.3,
        "brightness": 1.05,
        "vignette": True,
        "film_grain": False,
        "color_grade": "vibrant",
    },
    "clean": {
        "label": "Clean & Sharp",
        "description": "Professional clarity without stylization",
        "sharpen": 1.2,
        "contrast": 1.05,
        "saturation": 1.0,
        "brightness": 1.0,
        "vignette": False,
        "film_grain": False,
        "color_grade": "none",
    },
}


# =============== Registry ===============
class PresetRegistry:
    def __init__(self, default: str = DEFAULT_PRESET) -> None:
        self._by_name: Dict[str, Preset] = {}
        self.default = default.strip().lower()

    def register(self, preset: Preset) -> None:
        key = preset.name.strip().lower()
        if key in self._by_name:
            log.info("Preset '%s' replaced", key)
        self._by_name[key] = preset

    def names(self) -> list[str]:
        return sorted(self._by_name.keys())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._by_name

    def get(self, name: str) -> Preset:
        key = name.strip().lower()
        if key not in self._by_name:
            raise KeyError(f"Unknown preset '{name}'. Available: {', '.join(self.names()) or '(none)'}")
        return self._by_name[key]

    def resolve(self, name: Optional[str]) -> Preset:
        """Named preset, or the default one with an UnknownPresetWarning when the name is unknown."""
        if name is not None and name in self:
            return self.get(name)
        warnings.warn(
            f"Refiner preset {name!r} not found. Using '{self.default}' as fallback.",
            UnknownPresetWarning,
            stacklevel=2,
        )
        return self.get(self.default)

    def copy(self) -> "PresetRegistry":
        reg = PresetRegistry(self.default)
        reg._by_name = dict(self._by_name)
        return reg

    def load_file(self, path: Union[str, Path]) -> list[str]:
        """Register presets from a JSON object of {name: {field: value}}. Returns the names loaded."""
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid preset file {p}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Preset file {p} must contain a JSON object")
        loaded = []
        for name, fields_ in data.items():
            if not isinstance(fields_, dict):
                raise ValueError(f"Preset '{name}' in {p} must be an object")
            self.register(Preset.from_dict(name, fields_))
            loaded.append(name.strip().lower())
        log.info("Loaded %d preset(s) from %s", len(loaded), p)
        return loaded


def _builtin_registry() -> PresetRegistry:
    reg = PresetRegistry()
    for name, data in BUILTIN_PRESETS.items():
        reg.register(Preset.from_dict(name, data))
    return reg


PRESETS = _builtin_registry()


def resolve(name: Optional[str]) -> Preset:
    return PRESETS.resolve(name)
