from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

import cv2
import numpy as np

from detect_kit import DetectorConfig, LetterboxDetector, NetworkInputSpec, assemble, invoke, load_detector, load_detector_config
from detect_kit.runtime import with_thresholds


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _iter_frames(args: argparse.Namespace) -> Iterable[np.ndarray]:
    if args.image is not None:
        img = cv2.imread(args.image)
        if img is None:
            raise FileNotFoundError(f"Could not read image at path: {args.image}")
        for _ in range(int(args.repeats)):
            yield img
        return

    cap = cv2.VideoCapture(args.video)
    if not cap.isOpened():
        raise FileNotFoundError(f"Could not open video: {args.video}")
    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break
            yield frame
    finally:
        cap.release()


def _synthetic_infer(spec: NetworkInputSpec, n_boxes: int, seed: int = 0):
    """Model-free stand-in returning the same random dense output buffer every call."""

    rng = np.random.default_rng(seed)
    out = np.zeros((spec.batch_size, spec.max_detections_per_image, spec.row_size), dtype=np.float32)
    n = min(n_boxes, spec.max_detections_per_image)
    out[:, :n, 0] = rng.uniform(0, spec.input_width, size=(spec.batch_size, n))
    out[:, :n, 1] = rng.uniform(0, spec.input_height, size=(spec.batch_size, n))
    out[:, :n, 2:4] = rng.uniform(5, 120, size=(spec.batch_size, n, 2))
    out[:, :n, 4:] = rng.uniform(0, 1, size=(spec.batch_size, n, spec.row_size - 4))

    def infer(blob: np.ndarray, batch_count: int) -> np.ndarray:
        return out

    return infer


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark preprocess / inference / NMS / assembly latency.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image (repeated N times).")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    parser.add_argument("--config", default=None, help="Detector config JSON.")
    parser.add_argument("--model", default=None, help="Model path; omit with --synthetic-boxes.")
    parser.add_argument("--backend", default=None, help="Force backend: tensorrt / darknet / onnxruntime.")
    parser.add_argument(
        "--synthetic-boxes",
        type=int,
        default=None,
        help="Skip the model and feed N random candidate rows per image into the postprocessor.",
    )
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold override.")
    parser.add_argument("--nms", type=float, default=None, help="NMS IoU threshold override.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup frames to run but not record.")
    parser.add_argument("--repeats", type=int, default=100, help="For --image only: number of repeats.")
    args = parser.parse_args()

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    config = load_detector_config(Path(args.config)) if args.config else DetectorConfig()
    config = with_thresholds(config, conf=args.conf, nms=args.nms)

    if args.synthetic_boxes is not None:
        if args.synthetic_boxes < 1:
            raise ValueError("--synthetic-boxes must be >= 1")
        detector = LetterboxDetector(
            _synthetic_infer(config.spec, args.synthetic_boxes),
            config.spec,
            preprocess_cfg=config.preprocess,
            post_cfg=config.post,
            backend_name="synthetic",
        )
    else:
        detector = load_detector(args.model, config=config, backend=args.backend)

    t_pre: List[float] = []
    t_inf: List[float] = []
    t_nms: List[float] = []
    t_asm: List[float] = []
    seen = 0

    try:
        progress = None
        try:
            from tqdm import tqdm  # type: ignore

            progress = tqdm(desc="frames", unit="frame")
        except ImportError:
            print("Note: tqdm is not installed; progress bar disabled.")

        for frame in _iter_frames(args):
            seen += 1
            t0 = time.perf_counter()
            transforms = detector.pre.preprocess([frame])
            t1 = time.perf_counter()
            output = invoke(
                detector._infer_fn, detector.pre.buffer, 1, detector.post.floats_per_image, detector.spec.batch_size
            )
            t2 = time.perf_counter()
            kept = detector.post.process_batch(output, 1)
            t3 = time.perf_counter()
            _ = assemble(kept[0], transforms[0], normalized=detector.normalized, clip=detector.clip)
            t4 = time.perf_counter()

            if progress is not None:
                progress.update(1)
            if seen <= args.warmup:
                continue

            t_pre.append(t1 - t0)
            t_inf.append(t2 - t1)
            t_nms.append(t3 - t2)
            t_asm.append(t4 - t3)

        if progress is not None:
            progress.close()
    finally:
        detector.close()

    if not t_pre:
        raise RuntimeError("No benchmark samples collected (check input source / warmup).")

    print(_format_summary("preprocess", _summarize_ms(t_pre)))
    print(_format_summary("inference", _summarize_ms(t_inf)))
    print(_format_summary("decode_and_nms", _summarize_ms(t_nms)))
    print(_format_summary("assemble", _summarize_ms(t_asm)))
    print(f"frames_seen={seen} samples_recorded={len(t_pre)} warmup={args.warmup} backend={detector.backend_name}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
