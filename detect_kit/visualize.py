from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from .types import ObjectDetection

_PALETTE = [
    (255, 56, 56),
    (255, 157, 151),
    (255, 112, 31),
    (255, 178, 29),
    (207, 210, 49),
    (72, 249, 10),
    (146, 204, 23),
    (61, 219, 134),
    (26, 147, 52),
    (0, 212, 187),
    (44, 153, 168),
    (0, 194, 255),
    (52, 69, 147),
    (100, 115, 255),
    (0, 24, 236),
    (132, 56, 255),
    (82, 0, 133),
    (203, 56, 255),
    (255, 149, 200),
    (255, 55, 199),
]


def color_for_class_id(class_id: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id (OpenCV expects BGR).
    """

    if 0 <= class_id < len(_PALETTE):
        return _PALETTE[class_id]

    rng = np.random.default_rng(int(class_id))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[ObjectDetection],
    *,
    class_names: Optional[Dict[int, str]] = None,
    normalized: bool = False,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw boxes + class labels on an OpenCV BGR image and return a copy.

    Args:
        detections: centre/half-extent detections in this image's coordinates
        normalized: detections were produced with `normalized=True`
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]
    sx, sy = (w, h) if normalized else (1, 1)

    for det in detections:
        x1, y1, x2, y2 = det.as_xyxy()
        p1 = (int(np.clip(round(x1 * sx), 0, w - 1)), int(np.clip(round(y1 * sy), 0, h - 1)))
        p2 = (int(np.clip(round(x2 * sx), 0, w - 1)), int(np.clip(round(y2 * sy), 0, h - 1)))

        color = color_for_class_id(det.id)
        cv2.rectangle(out, p1, p2, color, thickness=box_thickness)

        label = class_names.get(det.id, str(det.id)) if class_names else str(det.id)
        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # Label above the box if it fits, else inside.
        y_text_top = p1[1] - th - baseline
        if y_text_top < 0:
            y_text_top = p1[1]

        cv2.rectangle(
            out,
            (p1[0], y_text_top),
            (min(p1[0] + tw, w - 1), min(y_text_top + th + baseline, h - 1)),
            color,
            thickness=-1,
        )
        cv2.putText(
            out,
            label,
            (p1[0], min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out
