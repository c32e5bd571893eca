from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError, InvokerFailure
from .nms import nms
from .types import NetworkInputSpec, RawDetection

DENSE = "dense"
COUNTED = "counted"

# [cx, cy, w, h, confidence, class_id]
COUNTED_ROW_SIZE = 6


@dataclass(frozen=True)
class PostprocessConfig:
    """
    Confidence filter + per-class NMS settings.

    output_layout:
    - "dense": max_detections_per_image rows of [cx, cy, w, h, obj, class_scores...]
    - "counted": a detection count followed by decoded rows
      [cx, cy, w, h, confidence, class_id] (tensorrtx-style engines that run their
      own decode plugin)
    """

    conf_threshold: float = 0.5
    nms_threshold: float = 0.4
    # Optional cap on detections kept per image after NMS.
    max_detections: Optional[int] = None
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Sequence[int]] = None
    output_layout: str = DENSE

    def __post_init__(self) -> None:
        if self.output_layout not in (DENSE, COUNTED):
            raise ConfigurationError(f"Unsupported output_layout: {self.output_layout!r}")
        if not 0.0 <= self.nms_threshold <= 1.0:
            raise ConfigurationError("nms_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ConfigurationError("max_detections must be >= 1 when set")


def floats_per_image(spec: NetworkInputSpec, layout: str = DENSE) -> int:
    if layout == COUNTED:
        return 1 + spec.max_detections_per_image * COUNTED_ROW_SIZE
    return spec.output_size


class SuppressionEngine:
    """
    Decodes one image's slice of the raw output, filters by confidence and runs
    non-maximum suppression independently per class.

    The result is ordered by confidence (descending), ties by original row order, so
    the same input always gives the same output order.
    """

    def __init__(self, spec: NetworkInputSpec, cfg: PostprocessConfig = PostprocessConfig()):
        self.spec = spec
        self.cfg = cfg

    @property
    def floats_per_image(self) -> int:
        return floats_per_image(self.spec, self.cfg.output_layout)

    def process(self, preds: np.ndarray) -> List[RawDetection]:
        boxes, scores, class_ids = self.decode(preds)
        boxes, scores, class_ids = self.filter(boxes, scores, class_ids)
        if scores.size == 0:
            return []

        keep = self.suppress(boxes, scores, class_ids)
        return [
            RawDetection(
                center_x=float(boxes[i, 0]),
                center_y=float(boxes[i, 1]),
                width=float(boxes[i, 2]),
                height=float(boxes[i, 3]),
                class_id=int(class_ids[i]),
                confidence=float(scores[i]),
            )
            for i in keep
        ]

    def process_batch(self, output: np.ndarray, batch_count: int) -> List[List[RawDetection]]:
        """Apply `process` to each image slice; result i belongs to image i."""

        out = np.asarray(output, dtype=np.float32).reshape(batch_count, -1)
        return [self.process(out[b]) for b in range(batch_count)]

    # ------------------------------------------------------------------ #
    # Steps
    # ------------------------------------------------------------------ #
    def decode(self, preds: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns boxes (N, 4) as cx, cy, w, h, confidences (N,) and class ids (N,).
        """

        p = np.asarray(preds, dtype=np.float32).reshape(-1)

        if self.cfg.output_layout == COUNTED:
            if p.size and not np.isfinite(p[0]):
                raise InvokerFailure(f"Detection count is not a finite number: {p[0]}")
            max_rows = (p.size - 1) // COUNTED_ROW_SIZE
            count = int(min(max(p[0], 0), max_rows)) if p.size else 0
            rows = p[1 : 1 + count * COUNTED_ROW_SIZE].reshape(count, COUNTED_ROW_SIZE)
            return rows[:, 0:4], rows[:, 4], rows[:, 5].astype(np.int64)

        row_size = self.spec.row_size
        if p.size % row_size != 0:
            raise ValueError(f"Output slice of {p.size} floats is not a multiple of row size {row_size}.")
        rows = p.reshape(-1, row_size)

        objectness = rows[:, 4]
        class_scores = rows[:, 5:]
        class_ids = np.argmax(class_scores, axis=1)
        class_conf = class_scores[np.arange(class_scores.shape[0]), class_ids]
        return rows[:, 0:4], objectness * class_conf, class_ids.astype(np.int64)

    def filter(
        self, boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        keep = scores >= self.cfg.conf_threshold
        if self.cfg.class_ids is not None:
            keep &= np.isin(class_ids, np.asarray(list(self.cfg.class_ids)))
        return boxes[keep], scores[keep], class_ids[keep]

    def suppress(self, boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray) -> np.ndarray:
        """
        Per-class NMS on cx, cy, w, h boxes. Returns indices into the given arrays.
        """

        if scores.size == 0:
            return np.empty((0,), dtype=np.int64)

        xyxy = cxcywh_to_xyxy(boxes)
        kept: List[int] = []
        for cls in np.unique(class_ids):
            idx = np.where(class_ids == cls)[0]
            keep_local = nms(xyxy[idx], scores[idx], self.cfg.nms_threshold)
            kept.extend(idx[keep_local].tolist())

        kept_arr = np.array(sorted(kept), dtype=np.int64)
        kept_arr = kept_arr[np.argsort(-scores[kept_arr], kind="stable")]
        if self.cfg.max_detections is not None:
            kept_arr = kept_arr[: self.cfg.max_detections]
        return kept_arr


def cxcywh_to_xyxy(boxes: np.ndarray) -> np.ndarray:
    cx, cy, w_box, h_box = boxes.T
    return np.stack([cx - w_box / 2, cy - h_box / 2, cx + w_box / 2, cy + h_box / 2], axis=1)
