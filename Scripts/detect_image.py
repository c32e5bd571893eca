import argparse
import json
import logging
from pathlib import Path

import cv2

from detect_kit import DetectorConfig, draw_detections, load_class_names, load_detector, load_detector_config
from detect_kit.runtime import with_thresholds


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the detector on an image, video or webcam and print/draw boxes.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--config", default=None, help="Detector config JSON (network spec, thresholds, backend).")
    parser.add_argument("--model", default=None, help="Path to a model (.engine/.plan, .weights, .onnx).")
    parser.add_argument("--backend", default=None, help="Force backend: tensorrt / darknet / onnxruntime.")
    parser.add_argument("--names", default=None, help="Class names (.names file or metadata with a names: block).")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold override.")
    parser.add_argument("--nms", type=float, default=None, help="NMS IoU threshold override.")
    parser.add_argument("--json", action="store_true", help="Print detections as JSON lines.")
    parser.add_argument("--show", action="store_true", help="Show a window with visualized detections.")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) to save the visualization.")
    parser.add_argument("--every", type=int, default=1, help="Process every Nth frame for video/webcam.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit).")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    if args.every < 1:
        raise ValueError("--every must be >= 1")
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")

    config = load_detector_config(Path(args.config)) if args.config else DetectorConfig()
    config = with_thresholds(config, conf=args.conf, nms=args.nms)
    class_names = load_class_names(args.names) if args.names else {}

    def report(frame_idx: int, detections) -> None:
        for det in detections:
            if args.json:
                print(json.dumps({"frame": frame_idx, **det.to_dict()}))
            else:
                name = class_names.get(det.id, str(det.id))
                print(frame_idx, name, det.center_x, det.center_y, det.width_half, det.height_half)

    with load_detector(args.model, config=config, backend=args.backend) as detector:
        if args.image is not None:
            img = cv2.imread(args.image)
            if img is None:
                raise FileNotFoundError(f"Could not read image at path: {args.image}")

            detections = detector.get_detections(img)
            report(0, detections)
            vis = draw_detections(img, detections, class_names=class_names, normalized=config.normalized)
            if args.out:
                ok = cv2.imwrite(args.out, vis)
                if not ok:
                    raise RuntimeError(f"Failed to write output image: {args.out}")
            if args.show:
                cv2.imshow("detections", vis)
                cv2.waitKey(0)
                cv2.destroyAllWindows()
            return 0

        if args.video is not None:
            cap = cv2.VideoCapture(args.video)
            if not cap.isOpened():
                raise FileNotFoundError(f"Could not open video: {args.video}")
        else:
            cap = cv2.VideoCapture(int(args.webcam))
            if not cap.isOpened():
                raise RuntimeError(f"Could not open webcam index: {args.webcam}")

        writer = None
        frame_idx = 0
        processed = 0
        try:
            while True:
                ok, frame = cap.read()
                if not ok or frame is None:
                    break

                frame_idx += 1
                if (frame_idx - 1) % args.every != 0:
                    continue

                detections = detector.get_detections(frame)
                report(frame_idx, detections)

                if args.out or args.show:
                    vis = draw_detections(frame, detections, class_names=class_names, normalized=config.normalized)

                    if args.out and writer is None:
                        fps = cap.get(cv2.CAP_PROP_FPS)
                        if fps is None or fps <= 0:
                            fps = 30.0
                        h, w = vis.shape[:2]
                        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                        writer = cv2.VideoWriter(args.out, fourcc, fps, (w, h))
                        if not writer.isOpened():
                            raise RuntimeError(f"Failed to open video writer: {args.out}")
                    if writer is not None:
                        writer.write(vis)

                    if args.show:
                        cv2.imshow("detections", vis)
                        key = cv2.waitKey(1) & 0xFF
                        if key in (27, ord("q")):
                            break

                processed += 1
                if args.max_frames and processed >= args.max_frames:
                    break
        finally:
            cap.release()
            if writer is not None:
                writer.release()
            if args.show:
                cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
