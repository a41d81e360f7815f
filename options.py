"""
Pipeline options: the resolved configuration record and its defaults.

Callers send a partial mapping (camelCase as in the JSON body, or the
snake_case field names); resolve_config() lays it over the defaults and
returns a new frozen PipelineConfig.
"""

import logging
import math
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from errors import ConfigError

log = logging.getLogger(__name__)


class NoiseStrategy(str, Enum):
    LIBRARY = "library"
    MANUAL_PIXEL = "manual_pixel"
    NONE = "none"


@dataclass(frozen=True)
class PipelineConfig:
    force_resize: bool = True
    noise_strategy: NoiseStrategy = NoiseStrategy.LIBRARY
    noise_sigma: float = 10.0
    manual_noise_amount: float = 8.0
    blur_sigma: float = 0.6
    vary_quality: bool = True
    base_jpeg_quality: int = 85
    modulate_color: bool = True
    posterize_levels: int = 24
    median_filter_size: int = 0
    rotate: bool = False
    max_rotation_degrees: float = 1.0
    shift_hue: bool = False
    max_hue_shift: int = 3
    sharpen_amount: float = 0.0
    target_format: str = "jpeg"


DEFAULT_CONFIG = PipelineConfig()

# JSON body key -> field name
OPTION_KEYS = {
    "forceResize": "force_resize",
    "noiseStrategy": "noise_strategy",
    "noiseSigma": "noise_sigma",
    "manualNoiseAmount": "manual_noise_amount",
    "blurSigma": "blur_sigma",
    "varyQuality": "vary_quality",
    "baseJpegQuality": "base_jpeg_quality",
    "modulateColor": "modulate_color",
    "posterizeLevels": "posterize_levels",
    "medianFilterSize": "median_filter_size",
    "rotate": "rotate",
    "maxRotationDegrees": "max_rotation_degrees",
    "shiftHue": "shift_hue",
    "maxHueShift": "max_hue_shift",
    "sharpenAmount": "sharpen_amount",
    "targetFormat": "target_format",
}

_FIELD_TYPES = {f.name: f.type for f in fields(PipelineConfig)}

_NOISE_ALIASES = {
    "library": NoiseStrategy.LIBRARY,
    "manual": NoiseStrategy.MANUAL_PIXEL,
    "manual_pixel": NoiseStrategy.MANUAL_PIXEL,
    "manualpixel": NoiseStrategy.MANUAL_PIXEL,
    "none": NoiseStrategy.NONE,
    "off": NoiseStrategy.NONE,
}


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise ConfigError(f"Option '{name}' must be a boolean, got {value!r}")


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ConfigError(f"Option '{name}' must be a number, got {value!r}")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Option '{name}' must be a number, got {value!r}") from exc
    if not math.isfinite(result):
        raise ConfigError(f"Option '{name}' must be a finite number, got {value!r}")
    return result


def _as_int(name: str, value: Any) -> int:
    return int(_as_float(name, value))


def _as_noise_strategy(name: str, value: Any) -> NoiseStrategy:
    if isinstance(value, NoiseStrategy):
        return value
    key = str(value).strip().lower().replace("-", "_")
    try:
        return _NOISE_ALIASES[key]
    except KeyError:
        raise ConfigError(
            f"Option '{name}' must be one of library, manual_pixel, none; got {value!r}"
        ) from None


_COERCERS = {
    bool: _as_bool,
    float: _as_float,
    int: _as_int,
    NoiseStrategy: _as_noise_strategy,
    str: lambda name, value: str(value).strip().lower(),
}


def _field_name(key: str) -> Optional[str]:
    if key in OPTION_KEYS:
        return OPTION_KEYS[key]
    if key in _FIELD_TYPES:
        return key
    return None


def resolve_config(
    overrides: Optional[Mapping[str, Any]] = None,
    defaults: PipelineConfig = DEFAULT_CONFIG,
) -> PipelineConfig:
    """Lay ``overrides`` over ``defaults`` field by field.

    Unknown keys are ignored. Raises ConfigError when a value cannot be
    coerced to the field's type or ``overrides`` is not a mapping.
    """
    if overrides is None:
        return replace(defaults)
    if isinstance(overrides, PipelineConfig):
        return overrides
    if not isinstance(overrides, Mapping):
        raise ConfigError(f"Options must be an object, got {type(overrides).__name__}")

    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        name = _field_name(key)
        if name is None:
            log.debug("Ignoring unknown option %r", key)
            continue
        changes[name] = _COERCERS[_FIELD_TYPES[name]](key, value)
    return replace(defaults, **changes)
