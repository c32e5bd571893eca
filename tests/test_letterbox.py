import unittest

import numpy as np

from detect_kit.errors import InputError
from detect_kit.letterbox import compute_letterbox, letterbox
from detect_kit.types import NetworkInputSpec


class TestComputeLetterbox(unittest.TestCase):
    def setUp(self) -> None:
        self.spec = NetworkInputSpec(input_width=640, input_height=640, batch_size=1, num_classes=80)

    def test_wide_720p_pads_vertically(self) -> None:
        t = compute_letterbox(1280, 720, self.spec)
        self.assertAlmostEqual(t.scale, 0.5)
        self.assertAlmostEqual(t.pad_y, 140.0)
        self.assertEqual(t.pad_x, 0.0)
        self.assertEqual(t.long_axis, "width")
        self.assertEqual((t.source_width, t.source_height), (1280, 720))

    def test_tall_image_pads_horizontally(self) -> None:
        t = compute_letterbox(720, 1280, self.spec)
        self.assertAlmostEqual(t.scale, 0.5)
        self.assertAlmostEqual(t.pad_x, 140.0)
        self.assertEqual(t.pad_y, 0.0)
        self.assertEqual(t.long_axis, "height")

    def test_matching_aspect_has_no_padding(self) -> None:
        spec = NetworkInputSpec(input_width=640, input_height=480, batch_size=1, num_classes=1)
        t = compute_letterbox(1280, 960, spec)
        self.assertAlmostEqual(t.scale, 0.5)
        self.assertEqual(t.pad_x, 0.0)
        self.assertEqual(t.pad_y, 0.0)

        t = compute_letterbox(640, 640, self.spec)
        self.assertEqual((t.scale, t.pad_x, t.pad_y), (1.0, 0.0, 0.0))

    def test_exactly_one_pad_is_zero_on_mismatch(self) -> None:
        specs = [
            self.spec,
            NetworkInputSpec(input_width=608, input_height=352, batch_size=1, num_classes=1),
        ]
        sizes = [(1280, 720), (720, 1280), (641, 640), (100, 3000), (1920, 1080), (300, 301)]
        for spec in specs:
            for w, h in sizes:
                t = compute_letterbox(w, h, spec)
                same_aspect = w * spec.input_height == h * spec.input_width
                with self.subTest(spec=spec.input_size, size=(w, h)):
                    if same_aspect:
                        self.assertEqual((t.pad_x, t.pad_y), (0.0, 0.0))
                    else:
                        self.assertEqual((t.pad_x == 0.0) + (t.pad_y == 0.0), 1)
                        self.assertGreaterEqual(min(t.pad_x, t.pad_y), 0.0)

    def test_inverse_of_forward_is_identity(self) -> None:
        rng = np.random.default_rng(7)
        for w, h in [(1280, 720), (720, 1280), (333, 777), (640, 640)]:
            t = compute_letterbox(w, h, self.spec)
            for x, y in rng.uniform(0, 640, size=(20, 2)):
                sx, sy = t.inverse(x, y)
                nx, ny = t.forward(sx, sy)
                self.assertAlmostEqual(nx, x, places=6)
                self.assertAlmostEqual(ny, y, places=6)

    def test_zero_area_rejected(self) -> None:
        with self.assertRaises(InputError):
            compute_letterbox(0, 720, self.spec)
        with self.assertRaises(InputError):
            compute_letterbox(1280, -1, self.spec)


class TestLetterboxImage(unittest.TestCase):
    def test_canvas_shape_and_padding_rows(self) -> None:
        spec = NetworkInputSpec(input_width=640, input_height=640, batch_size=1, num_classes=1)
        image = np.full((720, 1280, 3), 200, dtype=np.uint8)

        canvas, t = letterbox(image, spec, color=(0, 0, 0))

        self.assertEqual(canvas.shape, (640, 640, 3))
        self.assertAlmostEqual(t.pad_y, 140.0)
        self.assertTrue(np.all(canvas[:140] == 0))
        self.assertTrue(np.all(canvas[500:] == 0))
        self.assertTrue(np.all(canvas[140:500] == 200))

    def test_odd_padding_goes_to_bottom_right(self) -> None:
        spec = NetworkInputSpec(input_width=100, input_height=100, batch_size=1, num_classes=1)
        image = np.full((33, 100, 3), 50, dtype=np.uint8)

        canvas, t = letterbox(image, spec, color=(1, 1, 1))

        self.assertEqual(canvas.shape, (100, 100, 3))
        # the transform reports the whole-pixel offset actually applied
        self.assertEqual(t.pad_y, 33.0)
        # 67 rows of padding: 33 on top, 34 at the bottom
        self.assertTrue(np.all(canvas[:33] == 1))
        self.assertTrue(np.all(canvas[33:66] == 50))
        self.assertTrue(np.all(canvas[66:] == 1))

    def test_transform_matches_canvas_offset_for_fractional_pad(self) -> None:
        spec = NetworkInputSpec(input_width=640, input_height=640, batch_size=1, num_classes=1)
        image = np.full((333, 1000, 3), 200, dtype=np.uint8)

        canvas, t = letterbox(image, spec, color=(0, 0, 0))

        self.assertAlmostEqual(compute_letterbox(1000, 333, spec).pad_y, 213.44)
        self.assertEqual((t.pad_x, t.pad_y), (0.0, 213.0))
        self.assertTrue(np.all(canvas[212] == 0))
        self.assertTrue(np.all(canvas[213] == 200))
        # first content row maps back to the top edge of the source
        self.assertAlmostEqual(t.inverse(0.0, 213.0)[1], 0.0)


if __name__ == "__main__":
    unittest.main()
