import json
import tempfile
import unittest
from pathlib import Path

from detect_kit.config import DetectorConfig, load_detector_config
from detect_kit.errors import ConfigurationError
from detect_kit.metadata import load_class_names
from detect_kit.runtime import infer_backend_name, load_detector, with_thresholds


BASE = {
    "input_width": 640,
    "input_height": 640,
    "batch_size": 1,
    "num_classes": 80,
    "max_detections_per_image": 1000,
}


class _TmpDirCase(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.tmp = Path(tmpdir.name)

    def _write(self, name: str, text: str) -> Path:
        path = self.tmp / name
        path.write_text(text, encoding="utf-8")
        return path

    def _write_config(self, payload: dict) -> Path:
        return self._write("detector.json", json.dumps(payload))


class TestDetectorConfig(_TmpDirCase):
    def test_load_ok(self) -> None:
        path = self._write_config(
            {
                **BASE,
                "conf_threshold": 0.45,
                "nms_threshold": 0.5,
                "pad_color": [114, 114, 114],
                "swap_rb": False,
                "normalized": True,
                "backend": "tensorrt",
                "model": "Models/yolov7.engine",
                "output_layout": "counted",
                "class_ids": [0, 2],
            }
        )
        cfg = load_detector_config(path)
        self.assertIsInstance(cfg, DetectorConfig)
        self.assertEqual(cfg.spec.input_size, (640, 640))
        self.assertEqual(cfg.post.conf_threshold, 0.45)
        self.assertEqual(cfg.post.nms_threshold, 0.5)
        self.assertEqual(cfg.post.output_layout, "counted")
        self.assertEqual(list(cfg.post.class_ids), [0, 2])
        self.assertEqual(cfg.preprocess.pad_color, (114, 114, 114))
        self.assertFalse(cfg.preprocess.swap_rb)
        self.assertTrue(cfg.normalized)
        self.assertEqual(cfg.backend, "tensorrt")

    def test_defaults(self) -> None:
        cfg = load_detector_config(self._write_config(dict(BASE)))
        self.assertEqual(cfg.post.conf_threshold, 0.5)
        self.assertEqual(cfg.post.nms_threshold, 0.4)
        self.assertFalse(cfg.normalized)
        self.assertFalse(cfg.clip)
        self.assertIsNone(cfg.backend)

    def test_unknown_keys_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_detector_config(self._write_config({**BASE, "extra": 1}))

    def test_missing_spec_key_rejected(self) -> None:
        payload = dict(BASE)
        del payload["batch_size"]
        with self.assertRaises(ValueError):
            load_detector_config(self._write_config(payload))

    def test_bad_spec_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            load_detector_config(self._write_config({**BASE, "batch_size": 0}))

    def test_type_errors(self) -> None:
        for key, value in (("conf_threshold", "high"), ("normalized", 1), ("mean", [0, 0]), ("input_width", 640.0)):
            with self.subTest(key=key):
                with self.assertRaises(ValueError):
                    load_detector_config(self._write_config({**BASE, key: value}))

    def test_missing_file_and_bad_json(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_detector_config(self.tmp / "nope.json")
        with self.assertRaises(ValueError):
            load_detector_config(self._write("broken.json", "{not json"))

    def test_with_thresholds(self) -> None:
        cfg = with_thresholds(DetectorConfig(), conf=0.3)
        self.assertEqual(cfg.post.conf_threshold, 0.3)
        self.assertEqual(cfg.post.nms_threshold, 0.4)


class TestRuntime(_TmpDirCase):
    def test_backend_from_extension(self) -> None:
        self.assertEqual(infer_backend_name(Path("m.engine")), "tensorrt")
        self.assertEqual(infer_backend_name(Path("m.plan")), "tensorrt")
        self.assertEqual(infer_backend_name(Path("yolov4.weights")), "darknet")
        self.assertEqual(infer_backend_name(Path("m.onnx")), "onnxruntime")
        with self.assertRaises(ValueError):
            infer_backend_name(Path("m.bin"))

    def test_load_detector_needs_a_model(self) -> None:
        with self.assertRaises(ValueError):
            load_detector(None, config=DetectorConfig())

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ValueError):
            load_detector(self.tmp / "m.onnx", backend="caffe")


class TestClassNames(_TmpDirCase):
    def test_darknet_names_file(self) -> None:
        path = self._write("coco.names", "person\nbicycle\n\ncar\n")
        self.assertEqual(load_class_names(path), {0: "person", 1: "bicycle", 3: "car"})

    def test_metadata_names_block(self) -> None:
        path = self._write(
            "metadata.yaml",
            "task: detect\nnames:\n  0: person\n  1: 'bicycle'\nimgsz: 640\n",
        )
        self.assertEqual(load_class_names(path), {0: "person", 1: "bicycle"})


if __name__ == "__main__":
    unittest.main()
