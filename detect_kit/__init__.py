"""
Letterbox object-detection pipeline.

image(s) -> letterbox + normalize into one batch buffer -> opaque inference call
-> confidence filter + per-class NMS -> inverse letterbox mapping -> `ObjectDetection`.

The core needs only NumPy and OpenCV; inference runtimes (TensorRT, OpenCV DNN
Darknet, ONNX Runtime) live in `detect_kit.backends` and are imported lazily.
"""

from .assemble import assemble
from .config import DetectorConfig, load_detector_config, parse_detector_config
from .detector import Detector, LetterboxDetector
from .errors import ConfigurationError, DetectKitError, InputError, InvokerFailure
from .invoker import InferFn, invoke
from .letterbox import compute_letterbox, letterbox
from .metadata import load_class_names
from .nms import box_iou, nms
from .postprocess import PostprocessConfig, SuppressionEngine
from .preprocess import BatchPreprocessor, PreprocessConfig
from .runtime import find_project_root, load_detector, resolve_path
from .types import LetterboxTransform, NetworkInputSpec, ObjectDetection, RawDetection
from .visualize import draw_detections

__all__ = [
    "assemble",
    "DetectorConfig",
    "load_detector_config",
    "parse_detector_config",
    "Detector",
    "LetterboxDetector",
    "ConfigurationError",
    "DetectKitError",
    "InputError",
    "InvokerFailure",
    "InferFn",
    "invoke",
    "compute_letterbox",
    "letterbox",
    "load_class_names",
    "box_iou",
    "nms",
    "PostprocessConfig",
    "SuppressionEngine",
    "BatchPreprocessor",
    "PreprocessConfig",
    "find_project_root",
    "load_detector",
    "resolve_path",
    "LetterboxTransform",
    "NetworkInputSpec",
    "ObjectDetection",
    "RawDetection",
    "draw_detections",
]
