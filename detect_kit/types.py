from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Tuple

from .errors import ConfigurationError


@dataclass(frozen=True)
class NetworkInputSpec:
    """
    Fixed tensor shape the accelerator expects, set once at model-load time.

    The output layout is `batch_size x max_detections_per_image x (5 + num_classes)`.
    """

    input_width: int = 640
    input_height: int = 640
    batch_size: int = 1
    num_classes: int = 80
    max_detections_per_image: int = 1000

    def __post_init__(self) -> None:
        for name in ("input_width", "input_height", "batch_size", "num_classes", "max_detections_per_image"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {value}")

    @property
    def input_size(self) -> Tuple[int, int]:
        return self.input_width, self.input_height

    @property
    def row_size(self) -> int:
        return 5 + self.num_classes

    @property
    def output_size(self) -> int:
        """Floats per image in the raw output buffer."""
        return self.max_detections_per_image * self.row_size


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Uniform scale + symmetric padding between a source image and the network canvas.

    `long_axis` names the binding axis: "width" means the image is relatively wide,
    so padding goes top/bottom (`pad_y`); "height" means padding goes left/right.
    """

    scale: float
    pad_x: float
    pad_y: float
    long_axis: str
    source_width: int
    source_height: int

    def forward(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.pad_x, y * self.scale + self.pad_y

    def inverse(self, x: float, y: float) -> Tuple[float, float]:
        return (x - self.pad_x) / self.scale, (y - self.pad_y) / self.scale


@dataclass(frozen=True)
class RawDetection:
    """Decoded candidate in network-space pixels (post-resize, post-pad)."""

    center_x: float
    center_y: float
    width: float
    height: float
    class_id: int
    confidence: float

    def as_ltrb(self) -> Tuple[float, float, float, float]:
        hw = self.width / 2.0
        hh = self.height / 2.0
        return self.center_x - hw, self.center_y - hh, self.center_x + hw, self.center_y + hh


@dataclass(frozen=True)
class ObjectDetection:
    """
    Externally visible result in source-image space: centre plus half extents.

    Pixel units unless the detector was built with `normalized=True`, in which case
    x terms are divided by the source width and y terms by the source height.
    """

    id: int
    center_x: float
    center_y: float
    width_half: float
    height_half: float

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return (
            self.center_x - self.width_half,
            self.center_y - self.height_half,
            self.center_x + self.width_half,
            self.center_y + self.height_half,
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)
