from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence, Union

from .config import DetectorConfig
from .detector import LetterboxDetector


PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery.

    Useful when models live in `<root>/Models` and scripts run from anywhere below it.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def infer_backend_name(model_path: Path) -> str:
    suffix = model_path.suffix.lower()
    if suffix in {".engine", ".plan"}:
        return "tensorrt"
    if suffix == ".weights":
        return "darknet"
    if suffix == ".onnx":
        return "onnxruntime"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_detector(
    model_path: Optional[PathLike] = None,
    *,
    config: DetectorConfig = DetectorConfig(),
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
) -> LetterboxDetector:
    """
    Build a detector for a model on disk.

    Typical usage:
        detector = load_detector("Models/yolov7.engine")  # resolves from project root by default

    Args:
        model_path: engine / weights / onnx file; falls back to `config.model`
        backend: "tensorrt", "darknet" or "onnxruntime"; inferred from the extension when None
        root: base directory for resolving relative paths ("auto" uses best-effort project root)
    """

    model_path = model_path if model_path is not None else config.model
    if model_path is None:
        raise ValueError("No model path given (pass model_path or set 'model' in the config).")

    resolved = resolve_path(model_path, root=root)
    chosen = (backend or config.backend or infer_backend_name(resolved)).lower()
    spec = config.spec

    if chosen == "tensorrt":
        from .backends.tensorrt_backend import TensorRTBackend, TensorRTBackendConfig

        backend_obj = TensorRTBackend(resolved, spec, TensorRTBackendConfig(device=config.device))

    elif chosen == "darknet":
        from .backends.darknet_backend import DarknetBackend, DarknetBackendConfig

        if config.darknet_cfg is not None:
            cfg_path = resolve_path(config.darknet_cfg, root=root)
        else:
            cfg_path = resolved.with_suffix(".cfg")
        target = "cuda" if config.device.startswith("cuda") else "cpu"
        backend_obj = DarknetBackend(cfg_path, resolved, spec, DarknetBackendConfig(target=target))

    elif chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        backend_obj = OnnxRuntimeBackend(resolved, OnnxRuntimeBackendConfig(providers=config.onnx_providers))

    else:
        raise ValueError(f"Unsupported backend: {chosen!r}")

    return LetterboxDetector(
        backend_obj.infer,
        spec,
        preprocess_cfg=config.preprocess,
        post_cfg=config.post,
        normalized=config.normalized,
        clip=config.clip,
        backend=backend_obj,
        backend_name=chosen,
    )


def with_thresholds(config: DetectorConfig, conf: Optional[float] = None, nms: Optional[float] = None) -> DetectorConfig:
    """Copy of `config` with the confidence / NMS thresholds overridden where given."""

    post = config.post
    if conf is not None:
        post = replace(post, conf_threshold=float(conf))
    if nms is not None:
        post = replace(post, nms_threshold=float(nms))
    return replace(config, post=post)
