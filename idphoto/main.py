#!/usr/bin/env python3
"""
ID Photo Studio - command line entry point

    idphoto photo input/me.jpg --format passport --zoom 1.2 --bg "#ffffff"
    idphoto layout out/passport_*.png --paper 4x6 --cut-marks
"""

import argparse
import logging
import os
import sys
import warnings

# Quiet onnxruntime before rembg pulls it in
os.environ.setdefault('ORT_LOGGING_LEVEL', '3')
warnings.filterwarnings('ignore', category=UserWarning)

from .config import (
    BACKGROUND_COLORS, DPI, JPEG_QUALITY, LOG_DIR, OUTPUT_BASE, LAYOUT_SPACING,
    DEFAULT_PAPER, PAPERS, REGISTRY, SEGMENTATION_MODELS, SEGMENTATION_QUALITY,
    custom_format, get_format,
)
from .errors import IDPhotoError
from .export import save_layout, save_photo
from .geometry import EditState
from .layout import LayoutPacker, PhotoCollection
from .processor import PhotoProcessor
from .segmentation import RembgSegmenter, UnavailableSegmenter
from .utils import GPUInfo, configure_logging, load_image, parse_color, print_summary

logger = logging.getLogger(__name__)


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='idphoto', description='ID photo editor and print layout tool')
    parser.add_argument('--log-dir', default=LOG_DIR, help='Directory for idphoto.log')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    photo = sub.add_parser('photo', help='Produce one print-ready ID photo')
    photo.add_argument('input', help='Source image (JPEG, PNG, HEIC via Pillow plugins, ...)')
    photo.add_argument('--format', dest='format_key', default='passport',
                       choices=REGISTRY.keys(), help='Photo format')
    photo.add_argument('--width-mm', type=float, help='Custom format width (10-100mm)')
    photo.add_argument('--height-mm', type=float, help='Custom format height (10-100mm)')
    photo.add_argument('--zoom', type=float, default=1.0)
    photo.add_argument('--rotation', type=float, default=0.0, help='Degrees, clockwise')
    photo.add_argument('--pan-x', type=float, default=0.0, help='Rightward shift, preview units')
    photo.add_argument('--pan-y', type=float, default=0.0, help='Downward shift, preview units')
    photo.add_argument('--auto-frame', action='store_true', help='Frame the detected face (needs mediapipe)')
    photo.add_argument('--bg', default=None,
                       help=f"Background color: {', '.join(BACKGROUND_COLORS)}, '#RRGGBB' or a CSS name")
    photo.add_argument('--quality', default=SEGMENTATION_QUALITY, choices=list(SEGMENTATION_MODELS))
    photo.add_argument('--no-segmentation', action='store_true',
                       help='Skip the ML model and use the color-similarity mask')
    photo.add_argument('--cpu', action='store_true', help='Force CPU segmentation')
    photo.add_argument('--output-dir', default=OUTPUT_BASE)
    photo.add_argument('--file-format', default='png', choices=['png', 'jpeg'])
    photo.add_argument('--jpeg-quality', type=int, default=JPEG_QUALITY)

    layout = sub.add_parser('layout', help='Arrange finished photos on photo paper')
    layout.add_argument('inputs', nargs='+', help='Finished photos at print resolution')
    layout.add_argument('--format', dest='format_key', default='passport',
                        choices=REGISTRY.keys(), help='Format of the photos (cut mark size)')
    layout.add_argument('--copies', type=int, default=1, help='Copies of each input')
    layout.add_argument('--paper', default=DEFAULT_PAPER, choices=list(PAPERS))
    layout.add_argument('--spacing', type=int, default=LAYOUT_SPACING, help='Gap between photos in px')
    layout.add_argument('--cut-marks', action='store_true')
    layout.add_argument('--guides', action='store_true', help='Draw preview grid lines')
    layout.add_argument('--output-dir', default=OUTPUT_BASE)
    layout.add_argument('--file-format', default='png', choices=['png', 'jpeg'])

    return parser


def run_photo(args) -> dict:
    _banner("ID PHOTO")
    GPUInfo.print_info()

    if args.width_mm or args.height_mm:
        fmt = custom_format(args.width_mm or 35, args.height_mm or 45)
    else:
        fmt = get_format(args.format_key)
    background = parse_color(args.bg, default=fmt.bg_color)

    print(f"\nInput:  {args.input}")
    print(f"Format: {fmt.name} ({fmt.size_mm[0]:g}x{fmt.size_mm[1]:g}mm -> "
          f"{fmt.print_size[0]}x{fmt.print_size[1]}px @ {DPI} DPI)")

    source = load_image(args.input)
    print(f"Source: {source.width}x{source.height}px")

    if args.no_segmentation:
        segmenter = UnavailableSegmenter("disabled from the command line")
    else:
        segmenter = RembgSegmenter(quality=args.quality, force_cpu=args.cpu)

    processor = PhotoProcessor(segmenter=segmenter)
    try:
        if args.auto_frame:
            _banner("STEP 1: FRAME FACE")
            edit = processor.auto_frame(source, fmt)
        else:
            edit = EditState(zoom=args.zoom, rotation=args.rotation, pan=(args.pan_x, args.pan_y))
        print(f"Edit: zoom={edit.zoom:.2f}, rotation={edit.rotation:.1f}, "
              f"pan=({edit.pan[0]:.1f}, {edit.pan[1]:.1f})")

        _banner("STEP 2: RENDER, REPLACE BACKGROUND, SCALE")
        result = processor.process(source, fmt, edit, background_color=background)
        print(f"Background mask: {result.mask_method}")
        print(f"Final size: {result.photo.width}x{result.photo.height}px")
    finally:
        processor.close()

    path = save_photo(result.photo, fmt, args.output_dir,
                      file_format=args.file_format, quality=args.jpeg_quality)
    return {'photo': path}


def run_layout(args) -> dict:
    _banner("PRINT LAYOUT")
    fmt = get_format(args.format_key)
    paper = PAPERS[args.paper]
    print(f"Paper: {paper.name} ({paper.width_px}x{paper.height_px}px @ {DPI} DPI)")

    collection = PhotoCollection()
    for path in args.inputs:
        image = load_image(path).convert('RGB')
        for _ in range(max(1, args.copies)):
            collection.add(image, fmt)
    print(f"Photos: {len(collection)}")

    packer = LayoutPacker(paper, spacing=args.spacing)
    arranged = packer.auto_arrange(collection)
    print(f"Placed {arranged.placed_count} of {len(collection)}")
    if arranged.unplaced:
        print(f"  {len(arranged.unplaced)} photo(s) did not fit and keep their previous position")

    sheet = packer.render_layout(collection, guides=args.guides, cut_marks=args.cut_marks)
    path = save_layout(sheet, paper, args.output_dir, file_format=args.file_format)
    return {'layout': path}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_path = configure_logging(args.log_dir, level=logging.DEBUG if args.verbose else logging.INFO)
    logger.info(f"Logging to {log_path}")

    try:
        if args.command == 'photo':
            outputs = run_photo(args)
        else:
            outputs = run_layout(args)
    except (IDPhotoError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"\nError: {e}")
        return 1

    print_summary(outputs)
    return 0


if __name__ == "__main__":
    sys.exit(main())
