import threading
import unittest
from typing import List

import numpy as np

from detect_kit.detector import Detector, LetterboxDetector
from detect_kit.errors import ConfigurationError, InputError, InvokerFailure
from detect_kit.postprocess import PostprocessConfig
from detect_kit.types import NetworkInputSpec, ObjectDetection


SPEC = NetworkInputSpec(input_width=640, input_height=640, batch_size=3, num_classes=4, max_detections_per_image=8)


class EchoInfer:
    """Stands in for the accelerator: returns a fixed dense output buffer."""

    def __init__(self, output: np.ndarray):
        self.output = output
        self.calls: List[int] = []
        self.seen_buffers: List[int] = []

    def __call__(self, blob: np.ndarray, batch_count: int) -> np.ndarray:
        self.calls.append(batch_count)
        self.seen_buffers.append(id(blob))
        return self.output


class RecordingBackend:
    def __init__(self) -> None:
        self.closed = 0

    def close(self) -> None:
        self.closed += 1


def _empty_output() -> np.ndarray:
    return np.zeros((SPEC.batch_size, SPEC.max_detections_per_image, SPEC.row_size), dtype=np.float32)


def _row(cx, cy, w, h, class_id, score) -> np.ndarray:
    row = np.zeros((SPEC.row_size,), dtype=np.float32)
    row[:5] = [cx, cy, w, h, 1.0]
    row[5 + class_id] = score
    return row


def _frame(w: int = 1280, h: int = 720) -> np.ndarray:
    return np.zeros((h, w, 3), dtype=np.uint8)


class TestLetterboxDetector(unittest.TestCase):
    def test_single_image_scenario(self) -> None:
        out = _empty_output()
        out[0, 0] = _row(320, 300, 100, 100, class_id=2, score=0.9)
        infer = EchoInfer(out)
        detector = LetterboxDetector(infer, SPEC)

        dets = detector.get_detections(_frame())

        self.assertEqual(infer.calls, [1])
        self.assertEqual(len(dets), 1)
        self.assertIsInstance(dets[0], ObjectDetection)
        self.assertEqual(dets[0].id, 2)
        self.assertAlmostEqual(dets[0].center_x, 640.0)
        self.assertAlmostEqual(dets[0].center_y, 320.0)
        self.assertAlmostEqual(dets[0].width_half, 100.0)
        self.assertAlmostEqual(dets[0].height_half, 100.0)

    def test_batch_results_follow_input_order(self) -> None:
        out = _empty_output()
        for i in range(3):
            out[i, 0] = _row(100 + 100 * i, 320, 20, 20, class_id=i, score=0.95)
        detector = LetterboxDetector(EchoInfer(out), SPEC)
        images = [_frame(640, 640), _frame(1280, 720), _frame(720, 1280)]

        results = detector.get_batch_detections(images)

        self.assertEqual(len(results), 3)
        self.assertEqual([[d.id for d in r] for r in results], [[0], [1], [2]])
        # each image mapped with its own transform
        self.assertAlmostEqual(results[0][0].center_x, 100.0)
        self.assertAlmostEqual(results[1][0].center_x, 400.0)
        self.assertAlmostEqual(results[2][0].center_x, (300 - 140) / 0.5)

    def test_list_input_goes_to_batched_form(self) -> None:
        out = _empty_output()
        out[1, 0] = _row(320, 320, 10, 10, class_id=3, score=0.9)
        detector = LetterboxDetector(EchoInfer(out), SPEC)

        results = detector.get_detections([_frame(), _frame()])

        self.assertEqual(len(results), 2)
        self.assertEqual(results[0], [])
        self.assertEqual([d.id for d in results[1]], [3])

    def test_no_detections_is_empty_not_error(self) -> None:
        detector = LetterboxDetector(EchoInfer(_empty_output()), SPEC)
        self.assertEqual(detector(_frame()), [])

    def test_low_confidence_filtered(self) -> None:
        out = _empty_output()
        out[0, 0] = _row(320, 320, 10, 10, class_id=0, score=0.6)
        detector = LetterboxDetector(EchoInfer(out), SPEC, post_cfg=PostprocessConfig(conf_threshold=0.7))
        self.assertEqual(detector.get_detections(_frame()), [])

    def test_buffer_reused_across_calls(self) -> None:
        infer = EchoInfer(_empty_output())
        detector = LetterboxDetector(infer, SPEC)
        detector.get_detections(_frame())
        detector.get_detections([_frame(), _frame(300, 200)])
        self.assertEqual(len(set(infer.seen_buffers)), 1)

    def test_oversized_batch_rejected_before_inference(self) -> None:
        infer = EchoInfer(_empty_output())
        detector = LetterboxDetector(infer, SPEC)
        with self.assertRaises(ConfigurationError):
            detector.get_batch_detections([_frame()] * 4)
        with self.assertRaises(InputError):
            detector.get_detections(np.zeros((0, 0, 3), dtype=np.uint8))
        self.assertEqual(infer.calls, [])

    def test_invoker_failure_is_wrapped_and_not_retried(self) -> None:
        calls = []

        def broken(blob, batch_count):
            calls.append(batch_count)
            raise RuntimeError("device lost")

        detector = LetterboxDetector(broken, SPEC)
        with self.assertRaises(InvokerFailure) as ctx:
            detector.get_detections(_frame())
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(calls, [1])

    def test_short_output_is_invoker_failure(self) -> None:
        detector = LetterboxDetector(EchoInfer(np.zeros((5,), dtype=np.float32)), SPEC)
        with self.assertRaises(InvokerFailure):
            detector.get_detections(_frame())

    def test_output_size_must_match_the_layout(self) -> None:
        # row width of an 80-class model against a 4-class spec
        wrong_width = np.zeros((1, SPEC.max_detections_per_image, 85), dtype=np.float32)
        oversized = np.zeros((SPEC.batch_size + 1, SPEC.max_detections_per_image, SPEC.row_size), dtype=np.float32)
        for output in (wrong_width, oversized):
            with self.subTest(shape=output.shape):
                detector = LetterboxDetector(EchoInfer(output), SPEC)
                with self.assertRaises(InvokerFailure):
                    detector.get_detections(_frame())

    def test_output_for_filled_slots_only_is_accepted(self) -> None:
        out = np.zeros((2, SPEC.max_detections_per_image, SPEC.row_size), dtype=np.float32)
        out[1, 0] = _row(320, 320, 10, 10, class_id=1, score=0.9)
        detector = LetterboxDetector(EchoInfer(out), SPEC)

        results = detector.get_detections([_frame(), _frame()])

        self.assertEqual([[d.id for d in r] for r in results], [[], [1]])

    def test_close_releases_backend_once(self) -> None:
        backend = RecordingBackend()
        with LetterboxDetector(EchoInfer(_empty_output()), SPEC, backend=backend) as detector:
            detector.get_detections(_frame())
        self.assertTrue(detector.closed)
        detector.close()
        self.assertEqual(backend.closed, 1)
        with self.assertRaises(ConfigurationError):
            detector.get_detections(_frame())

    def test_separate_instances_run_concurrently(self) -> None:
        def make(class_id: int) -> LetterboxDetector:
            out = _empty_output()
            out[0, 0] = _row(320, 320, 10, 10, class_id=class_id, score=0.9)
            return LetterboxDetector(EchoInfer(out), SPEC)

        detectors = [make(0), make(1)]
        results = {}

        def run(idx: int) -> None:
            results[idx] = [detectors[idx].get_detections(_frame())[0].id for _ in range(10)]

        threads = [threading.Thread(target=run, args=(i,)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(results, {0: [0] * 10, 1: [1] * 10})

    def test_is_a_detector(self) -> None:
        self.assertIsInstance(LetterboxDetector(EchoInfer(_empty_output()), SPEC), Detector)


class TestNetworkInputSpec(unittest.TestCase):
    def test_invalid_dimensions_rejected(self) -> None:
        for kwargs in ({"input_width": 0}, {"input_height": -1}, {"batch_size": 0}, {"num_classes": 0}):
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigurationError):
                    NetworkInputSpec(**kwargs)

    def test_output_size(self) -> None:
        self.assertEqual(SPEC.row_size, 9)
        self.assertEqual(SPEC.output_size, 8 * 9)


if __name__ == "__main__":
    unittest.main()
