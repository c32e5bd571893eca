from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError, InputError
from .letterbox import letterbox
from .types import LetterboxTransform, NetworkInputSpec


@dataclass(frozen=True)
class PreprocessConfig:
    """
    Padding fill and pixel normalization expected by the model.

    These must match whatever the model was trained/calibrated with. Each channel
    ends up as `(pixel * scale - mean) / std`, after the optional BGR -> RGB swap.
    """

    pad_color: Tuple[int, int, int] = (128, 128, 128)
    scale: float = 1.0 / 255.0
    mean: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    std: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    swap_rb: bool = True

    def __post_init__(self) -> None:
        if len(self.pad_color) != 3:
            raise ConfigurationError("pad_color must have 3 components")
        if len(self.mean) != 3 or len(self.std) != 3:
            raise ConfigurationError("mean and std must have 3 components")
        if any(s == 0 for s in self.std):
            raise ConfigurationError("std components must be non-zero")
        if self.scale <= 0:
            raise ConfigurationError("scale must be > 0")


def validate_image(image: object, index: int = 0) -> np.ndarray:
    if image is None or not isinstance(image, np.ndarray):
        raise InputError(f"Image {index} must be a NumPy array (H, W, 3), got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InputError(f"Image {index}: expected shape (H, W, 3), got {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InputError(f"Image {index} has zero area: {image.shape}")
    return image


class BatchPreprocessor:
    """
    Letterboxes a batch of BGR images into one contiguous NCHW float32 buffer.

    The buffer is allocated once for `spec.batch_size` slots and rewritten in place on
    every call, so two batches must not be prepared concurrently on one instance.
    """

    def __init__(self, spec: NetworkInputSpec, cfg: PreprocessConfig = PreprocessConfig()):
        self.spec = spec
        self.cfg = cfg
        self._buffer = np.zeros((spec.batch_size, 3, spec.input_height, spec.input_width), dtype=np.float32)
        self._mean = np.asarray(cfg.mean, dtype=np.float32).reshape(3, 1, 1)
        self._std = np.asarray(cfg.std, dtype=np.float32).reshape(3, 1, 1)

    @property
    def buffer(self) -> np.ndarray:
        return self._buffer

    def check_batch(self, images: Sequence[np.ndarray]) -> None:
        """Reject the whole batch before any slot of the buffer is written."""

        if len(images) == 0:
            raise ConfigurationError("Batch must contain at least one image.")
        if len(images) > self.spec.batch_size:
            raise ConfigurationError(
                f"Batch of {len(images)} images exceeds the network batch size {self.spec.batch_size}."
            )
        for i, image in enumerate(images):
            validate_image(image, i)

    def preprocess(self, images: Sequence[np.ndarray]) -> List[LetterboxTransform]:
        self.check_batch(images)

        transforms: List[LetterboxTransform] = []
        for slot, image in enumerate(images):
            canvas, transform = letterbox(image, self.spec, color=self.cfg.pad_color)
            self._write_slot(slot, canvas)
            transforms.append(transform)
        return transforms

    def _write_slot(self, slot: int, canvas: np.ndarray) -> None:
        # HWC -> CHW, BGR -> RGB when requested
        chw = np.transpose(canvas, (2, 0, 1))
        if self.cfg.swap_rb:
            chw = chw[::-1]
        out = self._buffer[slot]
        np.multiply(chw, self.cfg.scale, out=out, casting="unsafe")
        out -= self._mean
        out /= self._std

    def release(self) -> None:
        self._buffer = np.zeros((0, 3, self.spec.input_height, self.spec.input_width), dtype=np.float32)
