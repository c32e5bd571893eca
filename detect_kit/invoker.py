"""
Boundary around the opaque inference call.

Input buffer:  (batch_size, 3, input_height, input_width) float32, NCHW.
Output buffer: `floats_per_image` floats for each image of the batch, laid out one
image after the other. For the dense layout that is
max_detections_per_image x (5 + num_classes), each row
`[cx, cy, w, h, objectness, class_score_0 ... class_score_{C-1}]` in network-space
pixels.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from .errors import InvokerFailure

logger = logging.getLogger(__name__)

InferFn = Callable[[np.ndarray, int], np.ndarray]


def invoke(
    infer_fn: InferFn,
    input_buffer: np.ndarray,
    batch_count: int,
    floats_per_image: int,
    batch_size: Optional[int] = None,
) -> np.ndarray:
    """
    Run `infer_fn` once and return its output shaped (batch_count, floats_per_image).

    The output must hold exactly `batch_count` images, or exactly `batch_size` images
    for engines built with a fixed batch. Anything else is `InvokerFailure`.

    Any exception from the call becomes `InvokerFailure`; no retry is attempted since
    the buffers are not guaranteed consistent afterwards.
    """

    try:
        raw = infer_fn(input_buffer, batch_count)
    except Exception as e:
        logger.error("Inference call failed: %s", e)
        raise InvokerFailure(f"Inference call failed: {e}") from e

    if raw is None:
        raise InvokerFailure("Inference call returned no output buffer.")

    out = np.asarray(raw, dtype=np.float32).reshape(-1)
    expected = batch_count * floats_per_image
    accepted = {expected}
    if batch_size is not None:
        accepted.add(batch_size * floats_per_image)
    if out.size not in accepted:
        raise InvokerFailure(
            f"Output buffer has {out.size} floats, expected {' or '.join(str(n) for n in sorted(accepted))} "
            f"({floats_per_image} per image)."
        )

    # Engines built for a fixed batch return every slot; only the filled ones are read.
    return out[:expected].reshape(batch_count, floats_per_image)
