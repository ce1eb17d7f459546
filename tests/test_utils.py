import io
import unittest

import numpy as np
from PIL import Image

from idphoto.errors import InvalidSourceError
from idphoto.utils import load_image, parse_color

from tests._images import png_bytes


class TestLoadImage(unittest.TestCase):
    def test_palette_transparency_kept(self):
        img = Image.new('P', (40, 40), 0)
        img.putpalette([0, 0, 0, 255, 0, 0])
        img.paste(1, (10, 10, 30, 30))
        buf = io.BytesIO()
        img.save(buf, 'PNG', transparency=0)

        out = load_image(buf.getvalue())
        self.assertEqual(out.mode, 'RGBA')
        self.assertEqual(out.getpixel((0, 0))[3], 0)
        self.assertEqual(out.getpixel((20, 20)), (255, 0, 0, 255))

    def test_rgb_trns_transparency_kept(self):
        img = Image.new('RGB', (20, 20), (0, 255, 0))
        img.paste((10, 20, 30), (5, 5, 15, 15))
        buf = io.BytesIO()
        img.save(buf, 'PNG', transparency=(0, 255, 0))

        out = load_image(buf.getvalue())
        self.assertEqual(out.getpixel((0, 0))[3], 0)
        self.assertEqual(out.getpixel((10, 10)), (10, 20, 30, 255))

    def test_sixteen_bit_grayscale_rescaled(self):
        values = np.full((40, 40), 1000, dtype=np.uint16)
        values[19, 19] = 39900
        out = load_image(png_bytes(Image.fromarray(values)))
        self.assertEqual(out.mode, 'RGBA')
        self.assertEqual(out.getpixel((19, 19)), (155, 155, 155, 255))
        self.assertEqual(out.getpixel((0, 0)), (3, 3, 3, 255))

    def test_rgba_passes_through(self):
        img = Image.new('RGBA', (8, 8), (10, 20, 30, 128))
        self.assertEqual(load_image(img).getpixel((4, 4)), (10, 20, 30, 128))

    def test_undecodable(self):
        with self.assertRaises(InvalidSourceError):
            load_image(b'not an image')


class TestParseColor(unittest.TestCase):
    def test_standard_backgrounds(self):
        self.assertEqual(parse_color('white'), (255, 255, 255))
        self.assertEqual(parse_color('Blue'), (67, 142, 219))
        self.assertEqual(parse_color('red'), (255, 0, 0))

    def test_free_form(self):
        self.assertEqual(parse_color('#102030'), (16, 32, 48))
        self.assertEqual(parse_color('navy'), (0, 0, 128))
        self.assertEqual(parse_color((1, 2, 3, 4)), (1, 2, 3))
        self.assertEqual(parse_color(None, default=(9, 9, 9)), (9, 9, 9))

    def test_unknown_color(self):
        with self.assertRaises(ValueError):
            parse_color('not-a-color')


if __name__ == '__main__':
    unittest.main()
