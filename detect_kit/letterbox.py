from dataclasses import replace
from typing import Tuple

import numpy as np

from .errors import InputError
from .types import LetterboxTransform, NetworkInputSpec


def compute_letterbox(source_width: int, source_height: int, spec: NetworkInputSpec) -> LetterboxTransform:
    """
    Scale and padding that fit a `source_width x source_height` image on the network canvas.

    The binding axis is picked by comparing the two ratios, not by taking min():
    if `r_h > r_w` the width binds and the padding is vertical, otherwise the height
    binds and the padding is horizontal. On an exact aspect match both pads are 0.
    """

    if source_width <= 0 or source_height <= 0:
        raise InputError(f"Source image must have positive size, got {source_width}x{source_height}")

    r_w = spec.input_width / (source_width * 1.0)
    r_h = spec.input_height / (source_height * 1.0)

    if r_h > r_w:
        return LetterboxTransform(
            scale=r_w,
            pad_x=0.0,
            pad_y=(spec.input_height - r_w * source_height) / 2.0,
            long_axis="width",
            source_width=int(source_width),
            source_height=int(source_height),
        )

    return LetterboxTransform(
        scale=r_h,
        pad_x=(spec.input_width - r_h * source_width) / 2.0,
        pad_y=0.0,
        long_axis="height",
        source_width=int(source_width),
        source_height=int(source_height),
    )


def letterbox(
    image: np.ndarray,
    spec: NetworkInputSpec,
    color: Tuple[int, int, int] = (128, 128, 128),
) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Resize and pad image onto the exact `input_width x input_height` canvas.

    The canvas offsets are whole pixels, so the returned transform carries the
    offsets actually applied (`left`, `top`) rather than the fractional pads of
    `compute_letterbox`. For 1000x333 on a 640 canvas that is `pad_y == 213`,
    not 213.44.

    Returns:
        padded: resized + padded image (H_in, W_in, C), same dtype as the input
        transform: the LetterboxTransform used, for mapping boxes back
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    h, w = image.shape[:2]
    transform = compute_letterbox(w, h, spec)

    resized_w = min(spec.input_width, max(1, int(round(w * transform.scale))))
    resized_h = min(spec.input_height, max(1, int(round(h * transform.scale))))

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    # Odd remainders go to the bottom/right edge.
    dw = spec.input_width - resized_w
    dh = spec.input_height - resized_h
    left, top = dw // 2, dh // 2
    right, bottom = dw - left, dh - top
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return padded, replace(transform, pad_x=float(left), pad_y=float(top))
