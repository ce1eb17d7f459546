import itertools
import unittest

from PIL import Image

from idphoto.config import PAPERS, PaperSpec, get_format
from idphoto.layout import FreeRect, LayoutPacker, MaxRectsBin, PhotoCollection

SPACING = 4


def _photo(color=(200, 30, 30), size=(390, 567)):
    return Image.new('RGB', size, color)


def _collection(count, size=(390, 567)):
    collection = PhotoCollection()
    fmt = get_format('large_one_inch')
    for i in range(count):
        collection.add(_photo((i * 30 % 255, 80, 120), size), fmt)
    return collection


class TestAutoArrange(unittest.TestCase):
    def setUp(self):
        self.paper = PAPERS['4x6']
        self.packer = LayoutPacker(self.paper, spacing=SPACING)

    def test_seven_photos_on_4x6(self):
        collection = _collection(7)
        result = self.packer.auto_arrange(collection)
        self.assertGreaterEqual(result.placed_count, 6)
        self.assertEqual(len(result.placements) + len(result.unplaced), 7)

    def test_placements_do_not_overlap(self):
        result = self.packer.auto_arrange(_collection(7))
        rects = list(result.placements.values())
        for p in rects:
            self.assertGreaterEqual(p.x, SPACING)
            self.assertGreaterEqual(p.y, SPACING)
            self.assertLessEqual(p.x + p.width, self.paper.width_px - SPACING)
            self.assertLessEqual(p.y + p.height, self.paper.height_px - SPACING)
        for a, b in itertools.combinations(rects, 2):
            apart_x = a.x + a.width + SPACING <= b.x or b.x + b.width + SPACING <= a.x
            apart_y = a.y + a.height + SPACING <= b.y or b.y + b.height + SPACING <= a.y
            self.assertTrue(apart_x or apart_y, (a, b))

    def test_deterministic(self):
        first = _collection(5)
        second = _collection(5)
        self.packer.auto_arrange(first)
        self.packer.auto_arrange(second)
        self.assertEqual(
            [(p.position, p.rotation) for p in first],
            [(p.position, p.rotation) for p in second],
        )

    def test_first_photo_top_left_and_normalized(self):
        collection = _collection(1)
        self.packer.auto_arrange(collection)
        photo = collection.photos[0]
        self.assertAlmostEqual(photo.position[0], (SPACING + 195) / 1800)
        self.assertAlmostEqual(photo.position[1], (SPACING + 283.5) / 1200)
        self.assertEqual(photo.rotation, 0.0)

    def test_oversized_photo_keeps_position(self):
        collection = _collection(1)
        big = collection.add(_photo(size=(2000, 100)), get_format('passport'))
        collection.move_to(big.photo_id, 0.3, 0.7)

        result = self.packer.auto_arrange(collection)
        self.assertEqual(result.unplaced, [big.photo_id])
        self.assertEqual(big.position, (0.3, 0.7))
        self.assertEqual(len(collection), 2)

    def test_wide_photo_rotated(self):
        collection = PhotoCollection()
        collection.add(_photo(size=(1150, 300)), get_format('passport'))
        packer = LayoutPacker(PaperSpec("strip", "Strip", 400, 1200), spacing=SPACING)
        result = packer.auto_arrange(collection)
        placement = next(iter(result.placements.values()))
        self.assertTrue(placement.rotated)
        self.assertEqual(collection.photos[0].rotation, 90.0)


class TestMaxRectsBin(unittest.TestCase):
    def test_initial_free_rect_inset_by_spacing(self):
        bin_ = MaxRectsBin(100, 50, spacing=4)
        self.assertEqual(bin_.free, [FreeRect(4, 4, 92, 42)])

    def test_square_tried_once(self):
        bin_ = MaxRectsBin(100, 100, spacing=0)
        placement = bin_.find_position('a', 30, 30)
        self.assertFalse(placement.rotated)

    def test_contained_rects_pruned(self):
        rects = [FreeRect(0, 0, 10, 10), FreeRect(2, 2, 3, 3), FreeRect(0, 0, 10, 10)]
        self.assertEqual(MaxRectsBin._prune(rects), [FreeRect(0, 0, 10, 10)])


class TestCollectionOperations(unittest.TestCase):
    def setUp(self):
        self.collection = _collection(1)
        self.photo = self.collection.photos[0]

    def test_move_clamped(self):
        self.collection.move_to(self.photo.photo_id, 5, -1)
        self.assertEqual(self.photo.position, (1.0, 0.0))

    def test_rotate90_cycles(self):
        for expected in (90.0, 180.0, 270.0, 0.0):
            self.collection.rotate90(self.photo.photo_id)
            self.assertEqual(self.photo.rotation, expected)

    def test_duplicate(self):
        dup = self.collection.duplicate(self.photo.photo_id)
        self.assertNotEqual(dup.photo_id, self.photo.photo_id)
        self.assertIs(dup.image, self.photo.image)
        self.assertEqual(len(self.collection), 2)
        self.assertAlmostEqual(dup.position[0], 0.55)

    def test_delete_and_clear(self):
        self.collection.delete(self.photo.photo_id)
        with self.assertRaises(KeyError):
            self.collection.get(self.photo.photo_id)
        self.collection.add(_photo(), get_format('passport'))
        self.collection.clear()
        self.assertEqual(len(self.collection), 0)


class TestRenderLayout(unittest.TestCase):
    def setUp(self):
        self.packer = LayoutPacker(PAPERS['4x6'], spacing=SPACING)

    def test_exact_paper_size(self):
        sheet = self.packer.render_layout(_collection(2))
        self.assertEqual(sheet.size, (1800, 1200))
        self.assertIn('icc_profile', sheet.info)

    def test_later_photos_draw_on_top(self):
        collection = PhotoCollection()
        fmt = get_format('passport')
        collection.add(_photo((255, 0, 0)), fmt)
        collection.add(_photo((0, 0, 255)), fmt)
        sheet = self.packer.render_layout(collection, guides=False)
        self.assertEqual(sheet.getpixel((900, 600)), (0, 0, 255))

    def test_arranged_photos_land_on_their_placements(self):
        collection = _collection(3)
        result = self.packer.auto_arrange(collection)
        sheet = self.packer.render_layout(collection, guides=False)
        for photo in collection:
            p = result.placements[photo.photo_id]
            expected = photo.image.getpixel((0, 0))
            self.assertEqual(sheet.getpixel((p.x + 1, p.y + 1)), expected)

    def test_cut_marks(self):
        collection = _collection(1)
        self.packer.auto_arrange(collection)
        fmt = collection.photos[0].format
        plain = self.packer.render_layout(collection, guides=False)
        marked = self.packer.render_layout(collection, guides=False, cut_marks=True)
        x = SPACING + 390 + fmt.mark_offset + 5
        self.assertEqual(plain.getpixel((x, SPACING)), (255, 255, 255))
        self.assertEqual(marked.getpixel((x, SPACING)), (0, 0, 0))


if __name__ == '__main__':
    unittest.main()
