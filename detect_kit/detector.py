from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Union

import numpy as np

from .assemble import assemble
from .errors import ConfigurationError
from .invoker import InferFn, invoke
from .postprocess import PostprocessConfig, SuppressionEngine
from .preprocess import BatchPreprocessor, PreprocessConfig
from .types import NetworkInputSpec, ObjectDetection

logger = logging.getLogger(__name__)

ImageOrBatch = Union[np.ndarray, Sequence[np.ndarray]]


class Detector(ABC):
    """
    Capability shared by every backend: image(s) in, `ObjectDetection`s out.

    Callers depend on this class only, never on a concrete backend.
    """

    @abstractmethod
    def get_batch_detections(self, images: Sequence[np.ndarray]) -> List[List[ObjectDetection]]:
        """Detections per image, index aligned with `images`."""

    def get_detections(self, image: ImageOrBatch):
        """
        Single image -> list of detections; list/tuple of images -> list of lists.
        """

        if isinstance(image, (list, tuple)):
            return self.get_batch_detections(image)
        return self.get_batch_detections([image])[0]

    def __call__(self, image: ImageOrBatch):
        return self.get_detections(image)

    def close(self) -> None:
        pass

    def __enter__(self) -> "Detector":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LetterboxDetector(Detector):
    """
    Sequential pipeline: letterbox preprocess -> inference -> per-class NMS -> inverse mapping.

    One call holds the shared input/output buffers from start to finish, so calls on
    the same instance are serialized. Separate instances share no state.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        spec: NetworkInputSpec,
        *,
        preprocess_cfg: PreprocessConfig = PreprocessConfig(),
        post_cfg: PostprocessConfig = PostprocessConfig(),
        normalized: bool = False,
        clip: bool = False,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
    ):
        self._infer_fn = infer_fn
        self.spec = spec
        self.backend = backend
        self.backend_name = backend_name
        self.normalized = normalized
        self.clip = clip
        self.pre = BatchPreprocessor(spec, preprocess_cfg)
        self.post = SuppressionEngine(spec, post_cfg)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get_batch_detections(self, images: Sequence[np.ndarray]) -> List[List[ObjectDetection]]:
        images = list(images)
        with self._lock:
            if self._closed:
                raise ConfigurationError("Detector has been closed.")

            transforms = self.pre.preprocess(images)
            batch_count = len(images)
            output = invoke(
                self._infer_fn, self.pre.buffer, batch_count, self.post.floats_per_image, self.spec.batch_size
            )
            kept = self.post.process_batch(output, batch_count)

            results = [
                assemble(raw, transform, normalized=self.normalized, clip=self.clip)
                for raw, transform in zip(kept, transforms)
            ]

        logger.debug("batch=%d detections=%s", batch_count, [len(r) for r in results])
        return results

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            backend_close = getattr(self.backend, "close", None)
            if callable(backend_close):
                backend_close()
            self.pre.release()
            self.backend = None
        logger.info("Detector closed (backend=%s).", self.backend_name)
