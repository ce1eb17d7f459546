import unittest

import numpy as np
from PIL import Image

from idphoto.compositor import (
    BackgroundCompositor, METHOD_COLOR, METHOD_FLAT, METHOD_SEGMENTATION, WHITE,
)
from idphoto.config import CompositeSettings
from idphoto.segmentation import FixedMaskSegmenter, UnavailableSegmenter

BLUE = (0, 0, 255)
RED = (255, 0, 0)


def _person_on_white():
    img = Image.new('RGB', (100, 100), (255, 255, 255))
    img.paste((40, 40, 40), (30, 30, 70, 80))
    return img


class TestBackgroundCompositor(unittest.TestCase):
    def setUp(self):
        self.compositor = BackgroundCompositor()

    def test_segmentation_path(self):
        raster = Image.new('RGB', (60, 60), (128, 128, 128))
        raster.paste(RED, (0, 0, 30, 60))
        mask = np.zeros((60, 60), dtype=np.float32)
        mask[:, :30] = 1.0

        result = self.compositor.replace_background(raster, FixedMaskSegmenter(mask), BLUE)
        self.assertEqual(result.method, METHOD_SEGMENTATION)
        self.assertEqual(result.image.size, raster.size)
        self.assertEqual(result.image.getpixel((10, 30)), RED)
        self.assertEqual(result.image.getpixel((50, 30)), BLUE)

    def test_color_similarity_fallback(self):
        raster = _person_on_white()
        result = self.compositor.replace_background(raster, UnavailableSegmenter(), RED)
        self.assertEqual(result.method, METHOD_COLOR)
        self.assertEqual(result.image.size, raster.size)
        self.assertEqual(result.image.getpixel((2, 2)), RED)
        self.assertEqual(result.image.getpixel((50, 55)), (40, 40, 40))

    def test_subject_touching_one_edge_kept(self):
        raster = Image.new('RGB', (120, 160), (120, 170, 220))
        raster.paste((220, 180, 150), (45, 40, 75, 120))
        raster.paste((20, 30, 90), (30, 120, 90, 160))
        result = self.compositor.replace_background(raster, UnavailableSegmenter(), RED)
        self.assertEqual(result.method, METHOD_COLOR)
        self.assertEqual(result.image.getpixel((60, 145)), (20, 30, 90))
        self.assertEqual(result.image.getpixel((60, 80)), (220, 180, 150))
        self.assertEqual(result.image.getpixel((5, 5)), RED)
        self.assertEqual(result.image.getpixel((5, 150)), RED)

    def test_flat_when_background_share_implausible(self):
        raster = Image.new('RGB', (50, 50), (255, 255, 255))
        result = self.compositor.replace_background(raster, UnavailableSegmenter(), RED)
        self.assertEqual(result.method, METHOD_FLAT)
        self.assertEqual(result.image.size, raster.size)

    def test_flat_when_too_small(self):
        raster = Image.new('RGB', (5, 5), (10, 200, 10))
        result = self.compositor.replace_background(raster, None, RED)
        self.assertEqual(result.method, METHOD_FLAT)
        self.assertEqual(result.image.size, (5, 5))

    def test_mismatched_mask_ignored(self):
        raster = _person_on_white()
        result = self.compositor.composite(raster, np.ones((10, 10), dtype=np.float32), RED)
        self.assertEqual(result.method, METHOD_COLOR)

    def test_flat_over_fills_transparency(self):
        raster = Image.new('RGBA', (20, 20), (0, 0, 0, 0))
        out = BackgroundCompositor.flat_over(raster, BLUE)
        self.assertEqual(out.mode, 'RGB')
        self.assertEqual(out.getpixel((5, 5)), BLUE)

    def test_input_not_modified(self):
        raster = _person_on_white()
        before = raster.tobytes()
        self.compositor.replace_background(raster, UnavailableSegmenter(), RED)
        self.assertEqual(raster.tobytes(), before)


class TestColorSampling(unittest.TestCase):
    def setUp(self):
        self.compositor = BackgroundCompositor(CompositeSettings())

    def test_white_always_included(self):
        samples = np.tile(np.array([[0.0, 0.0, 1.0]], dtype=np.float32), (40, 1))
        colors = self.compositor.dominant_colors(samples)
        self.assertEqual(len(colors), 2)
        self.assertTrue(np.allclose(colors[-1], WHITE))

    def test_at_most_max_colors(self):
        palette = np.array([
            [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.5, 0.5, 0.0],
        ], dtype=np.float32)
        samples = np.repeat(palette, 10, axis=0)
        colors = self.compositor.dominant_colors(samples)
        self.assertEqual(len(colors), 3)
        self.assertTrue(any(np.allclose(c, WHITE) for c in colors))

    def test_single_side_cluster_dropped(self):
        blue = np.array([[0.0, 0.0, 1.0]], dtype=np.float32)
        dark = np.array([[0.1, 0.1, 0.3]], dtype=np.float32)
        samples = np.concatenate([
            np.tile(blue, (30, 1)),
            np.tile(blue, (10, 1)), np.tile(dark, (20, 1)),
            np.tile(blue, (30, 1)),
            np.tile(blue, (30, 1)),
        ])
        sides = np.repeat(np.arange(4), 30)
        colors = self.compositor.dominant_colors(samples, sides)
        self.assertEqual(len(colors), 2)
        self.assertTrue(np.allclose(colors[0], blue[0]))
        self.assertTrue(np.allclose(colors[1], WHITE))

        unsided = self.compositor.dominant_colors(samples)
        self.assertEqual(len(unsided), 3)

    def test_light_colors_get_wider_tolerance(self):
        self.assertEqual(self.compositor.tolerance_for(WHITE), 0.25)
        self.assertEqual(self.compositor.tolerance_for(np.array([0.2, 0.2, 0.2])), 0.15)

    def test_refined_mask_stays_in_range(self):
        mask = np.zeros((30, 30), dtype=np.float32)
        mask[10:20, 10:20] = 1.0
        refined = self.compositor.refine_mask(mask)
        self.assertEqual(refined.shape, mask.shape)
        self.assertGreaterEqual(float(refined.min()), 0.0)
        self.assertLessEqual(float(refined.max()), 1.0)
        self.assertAlmostEqual(float(refined[15, 15]), 1.0)
        self.assertAlmostEqual(float(refined[0, 0]), 0.0)


if __name__ == '__main__':
    unittest.main()
