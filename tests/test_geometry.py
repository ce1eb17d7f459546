import math
import unittest

from idphoto.config import get_format
from idphoto.geometry import EditState, FrameSpec, GeometryEngine, normalize_rotation


class TestEditState(unittest.TestCase):
    def test_zoom_clamped(self):
        self.assertEqual(EditState(zoom=5.0).zoom, 3.0)
        self.assertEqual(EditState(zoom=0.01).zoom, 0.1)

    def test_non_finite_values_reset(self):
        state = EditState(zoom=float('nan'), rotation=float('inf'), pan=(float('nan'), 3.0))
        self.assertEqual(state.zoom, 1.0)
        self.assertEqual(state.rotation, 0.0)
        self.assertEqual(state.pan, (0.0, 3.0))

    def test_rotation_normalized(self):
        self.assertEqual(normalize_rotation(270), -90.0)
        self.assertEqual(normalize_rotation(-180), 180.0)
        self.assertEqual(normalize_rotation(450), 90.0)
        self.assertEqual(EditState(rotation=360).rotation, 0.0)

    def test_identity(self):
        self.assertTrue(EditState().is_identity)
        self.assertTrue(EditState.reset().is_identity)
        self.assertFalse(EditState(zoom=1.2).is_identity)


class TestGeometryEngine(unittest.TestCase):
    def setUp(self):
        self.engine = GeometryEngine()
        self.frame = FrameSpec(width=200.0, height=200.0)

    def test_fit_scale(self):
        self.assertAlmostEqual(self.engine.fit_scale((4000, 3000)), 0.1)
        self.assertEqual(self.engine.fit_scale((0, 3000)), 1.0)

    def test_identity_centers_source(self):
        t = self.engine.compute((800, 400), self.frame, EditState())
        x, y, w, h = t.destination_rect
        self.assertAlmostEqual(w, 400.0)
        self.assertAlmostEqual(h, 200.0)
        self.assertAlmostEqual(x + w / 2, 100.0)
        self.assertAlmostEqual(y + h / 2, 100.0)

    def test_inverse_undoes_forward(self):
        t = self.engine.compute((640, 480), self.frame, EditState(zoom=1.7, rotation=33, pan=(12, -7)))
        for point in [(0, 0), (100, 50), (639, 479)]:
            back = t.inverse(t.forward(point))
            self.assertAlmostEqual(back[0], point[0], places=6)
            self.assertAlmostEqual(back[1], point[1], places=6)

    def test_rotation_is_about_frame_center(self):
        edit = EditState(zoom=1.3, pan=(10, 5))
        straight = self.engine.compute((640, 480), self.frame, edit)
        rotated = self.engine.compute((640, 480), self.frame, EditState(zoom=1.3, rotation=37, pan=(10, 5)))
        under_center = straight.inverse(self.frame.center)
        moved = rotated.forward(under_center)
        self.assertAlmostEqual(moved[0], 100.0, places=6)
        self.assertAlmostEqual(moved[1], 100.0, places=6)

    def test_positive_rotation_is_clockwise(self):
        straight = self.engine.compute((400, 400), self.frame, EditState())
        quarter = self.engine.compute((400, 400), self.frame, EditState(rotation=90))
        right_of_center = straight.inverse((150, 100))
        x, y = quarter.forward(right_of_center)
        self.assertAlmostEqual(x, 100.0, places=6)
        self.assertAlmostEqual(y, 150.0, places=6)

    def test_pan_sign_convention(self):
        base = self.engine.compute((400, 400), self.frame, EditState())
        moved = self.engine.compute((400, 400), self.frame, EditState(pan=(10, 20)))
        self.assertAlmostEqual(moved.origin[0] - base.origin[0], 10.0)
        self.assertAlmostEqual(moved.origin[1] - base.origin[1], 20.0)

    def test_transform_scales_with_frame_height(self):
        edit = EditState(zoom=1.5, pan=(10, -4))
        small = self.engine.compute((640, 480), FrameSpec(150.0, 200.0), edit)
        large = self.engine.compute((640, 480), FrameSpec(600.0, 800.0), edit)
        self.assertAlmostEqual(large.scale, small.scale * 4)
        self.assertAlmostEqual(large.origin[0], small.origin[0] * 4)
        self.assertAlmostEqual(large.origin[1], small.origin[1] * 4)

    def test_source_crop_box(self):
        t = self.engine.compute((400, 400), self.frame, EditState(zoom=2.0))
        left, top, right, bottom = t.source_crop_box
        self.assertAlmostEqual(left, 150.0)
        self.assertAlmostEqual(top, 150.0)
        self.assertAlmostEqual(right, 250.0)
        self.assertAlmostEqual(bottom, 250.0)

        zoomed_out = self.engine.compute((400, 400), self.frame, EditState(zoom=0.5))
        self.assertEqual(zoomed_out.source_crop_box, (0.0, 0.0, 400.0, 400.0))

    def test_frame_for_format(self):
        frame = self.engine.frame_for(get_format('passport'))
        self.assertEqual(frame.height, 200.0)
        self.assertAlmostEqual(frame.aspect_ratio, 35 / 45)
        self.assertEqual(frame.pixel_size, (156, 200))

    def test_fit_to_face(self):
        fmt = get_format('passport')
        source = (1000, 1000)
        face = (400, 300, 200, 250)
        edit = self.engine.fit_to_face(source, face, fmt)
        self.assertAlmostEqual(edit.zoom, 1.4)

        frame = self.engine.frame_for(fmt)
        t = self.engine.compute(source, frame, edit)
        cx, cy = t.forward((500, 425))
        self.assertAlmostEqual(cx, frame.width / 2)
        self.assertAlmostEqual(cy, fmt.nose_position * frame.height)
        self.assertTrue(math.isclose(250 * t.scale, fmt.face_coverage * frame.height))

    def test_fit_to_empty_face_is_identity(self):
        edit = self.engine.fit_to_face((100, 100), (0, 0, 0, 0), get_format('passport'))
        self.assertTrue(edit.is_identity)


if __name__ == '__main__':
    unittest.main()
