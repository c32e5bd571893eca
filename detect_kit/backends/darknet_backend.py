from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

import numpy as np

from ..types import NetworkInputSpec

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class DarknetBackendConfig:
    """
    Configuration for the classic Darknet network run through OpenCV DNN.

    - target: "cpu" or "cuda" (requires an OpenCV build with CUDA DNN)
    """

    target: str = "cpu"


def pack_darknet_rows(outs: Sequence[np.ndarray], spec: NetworkInputSpec, batch_count: int) -> np.ndarray:
    """
    Convert OpenCV region-layer outputs into the dense layout.

    Region layers emit `[cx, cy, w, h, obj, obj * p_0 ... obj * p_{C-1}]` with geometry
    relative to the network input. The dense layout wants raw class probabilities
    (confidence is `obj * max(p)` downstream), so class columns are divided back by
    objectness where it is positive. Geometry is rescaled to network-space pixels.

    Returns (batch_count, max_detections_per_image, 5 + num_classes); zero rows pad,
    and when an image has more rows than the limit the lowest-objectness ones are
    dropped while the rest keep their original order.
    """

    per_layer = [np.asarray(o, dtype=np.float32).reshape(batch_count, -1, spec.row_size) for o in outs]
    rows = np.concatenate(per_layer, axis=1)
    rows[:, :, [0, 2]] *= spec.input_width
    rows[:, :, [1, 3]] *= spec.input_height

    obj = rows[:, :, 4:5]
    np.divide(rows[:, :, 5:], obj, out=rows[:, :, 5:], where=obj > 0)

    limit = spec.max_detections_per_image
    packed = np.zeros((batch_count, limit, spec.row_size), dtype=np.float32)
    for b in range(batch_count):
        image_rows = rows[b]
        if image_rows.shape[0] > limit:
            order = np.argsort(-image_rows[:, 4], kind="stable")[:limit]
            image_rows = image_rows[np.sort(order)]
        packed[b, : image_rows.shape[0]] = image_rows
    return packed


class DarknetBackend:
    """
    Classic-network backend: a Darknet cfg/weights pair executed by `cv2.dnn`.

    Needs an OpenCV 4.x build; the Darknet importer is not part of OpenCV 5.
    Output is packed by `pack_darknet_rows`.
    """

    def __init__(
        self,
        cfg_path: PathLike,
        weights_path: PathLike,
        spec: NetworkInputSpec,
        cfg: DarknetBackendConfig = DarknetBackendConfig(),
    ):
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for the Darknet backend. Install with `pip install opencv-python`.") from e

        if not hasattr(cv2.dnn, "readNetFromDarknet"):
            raise ImportError(
                f"OpenCV {getattr(cv2, '__version__', '?')} has no Darknet importer. "
                "Install a 4.x release with `pip install 'opencv-python>=4.5,<5'`."
            )

        self._cv2 = cv2
        self.spec = spec
        self.cfg_path = Path(cfg_path)
        self.weights_path = Path(weights_path)
        for path in (self.cfg_path, self.weights_path):
            if not path.is_file():
                raise FileNotFoundError(str(path))

        logger.info("Initialization start: cfg=%s weights=%s", self.cfg_path, self.weights_path)
        net = cv2.dnn.readNetFromDarknet(str(self.cfg_path), str(self.weights_path))

        if cfg.target == "cuda":
            try:
                net.setPreferableBackend(cv2.dnn.DNN_BACKEND_CUDA)
                net.setPreferableTarget(cv2.dnn.DNN_TARGET_CUDA)
            except cv2.error as e:
                raise RuntimeError(f"Failed to set CUDA backend for OpenCV DNN: {e}") from e
        elif cfg.target == "cpu":
            net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
            net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)
        else:
            raise ValueError(f"Unsupported Darknet target: {cfg.target!r}")

        self.net = net
        self.output_layers: List[str] = list(net.getUnconnectedOutLayersNames())
        logger.info("Initialization finish: outputs=%s", self.output_layers)

    def infer(self, blob: np.ndarray, batch_count: int) -> np.ndarray:
        if self.net is None:
            raise RuntimeError("Darknet backend has been closed.")

        self.net.setInput(np.ascontiguousarray(blob[:batch_count]))
        outs = self.net.forward(self.output_layers)
        return pack_darknet_rows(outs, self.spec, batch_count)

    def close(self) -> None:
        self.net = None
