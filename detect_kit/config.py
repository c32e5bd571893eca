from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .postprocess import DENSE, PostprocessConfig
from .preprocess import PreprocessConfig
from .types import NetworkInputSpec


@dataclass(frozen=True)
class DetectorConfig:
    """
    Everything a detector is constructed with; fixed for the detector's lifetime.
    """

    spec: NetworkInputSpec = field(default_factory=NetworkInputSpec)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    post: PostprocessConfig = field(default_factory=PostprocessConfig)
    normalized: bool = False
    clip: bool = False
    backend: Optional[str] = None
    model: Optional[str] = None
    darknet_cfg: Optional[str] = None
    device: str = "cuda"
    onnx_providers: Optional[Tuple[str, ...]] = None


_SPEC_KEYS = ("input_width", "input_height", "batch_size", "num_classes", "max_detections_per_image")
_ALLOWED = {
    *_SPEC_KEYS,
    "conf_threshold",
    "nms_threshold",
    "max_detections",
    "class_ids",
    "output_layout",
    "pad_color",
    "scale",
    "mean",
    "std",
    "swap_rb",
    "normalized",
    "clip",
    "backend",
    "model",
    "darknet_cfg",
    "device",
    "onnx_providers",
}


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _opt_number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _opt_bool(payload: Dict[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _opt_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _opt_triple(payload: Dict[str, Any], key: str, default: Tuple[float, float, float]) -> Tuple[float, ...]:
    value = payload.get(key)
    if value is None:
        return default
    if (
        not isinstance(value, list)
        or len(value) != 3
        or any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in value)
    ):
        raise ValueError(f"{key} must be a list of 3 numbers")
    return tuple(value)


def _opt_int_list(payload: Dict[str, Any], key: str) -> Optional[List[int]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise ValueError(f"{key} must be a list of integers")
    return list(value)


def parse_detector_config(payload: Dict[str, Any]) -> DetectorConfig:
    unknown = sorted(set(payload.keys()) - _ALLOWED)
    if unknown:
        raise ValueError(f"Unknown detector config keys: {unknown}")

    spec = NetworkInputSpec(**{key: _require_int(payload, key) for key in _SPEC_KEYS})

    max_detections = payload.get("max_detections")
    if max_detections is not None and (isinstance(max_detections, bool) or not isinstance(max_detections, int)):
        raise ValueError("max_detections must be an integer")

    post = PostprocessConfig(
        conf_threshold=_opt_number(payload, "conf_threshold", 0.5),
        nms_threshold=_opt_number(payload, "nms_threshold", 0.4),
        max_detections=max_detections,
        class_ids=_opt_int_list(payload, "class_ids"),
        output_layout=_opt_str(payload, "output_layout") or DENSE,
    )

    defaults = PreprocessConfig()
    pad_color = _opt_triple(payload, "pad_color", defaults.pad_color)
    preprocess = PreprocessConfig(
        pad_color=tuple(int(c) for c in pad_color),
        scale=_opt_number(payload, "scale", defaults.scale),
        mean=_opt_triple(payload, "mean", defaults.mean),
        std=_opt_triple(payload, "std", defaults.std),
        swap_rb=_opt_bool(payload, "swap_rb", defaults.swap_rb),
    )

    providers = payload.get("onnx_providers")
    if providers is not None:
        if not isinstance(providers, list) or not all(isinstance(p, str) and p.strip() for p in providers):
            raise ValueError("onnx_providers must be a list of non-empty strings")
        providers = tuple(p.strip() for p in providers)

    return DetectorConfig(
        spec=spec,
        preprocess=preprocess,
        post=post,
        normalized=_opt_bool(payload, "normalized", False),
        clip=_opt_bool(payload, "clip", False),
        backend=_opt_str(payload, "backend"),
        model=_opt_str(payload, "model"),
        darknet_cfg=_opt_str(payload, "darknet_cfg"),
        device=_opt_str(payload, "device") or "cuda",
        onnx_providers=providers,
    )


def load_detector_config(path: Path) -> DetectorConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Detector config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid detector config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Detector config must be a JSON object")
    return parse_detector_config(payload)
