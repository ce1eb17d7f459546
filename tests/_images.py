"""Synthetic test images."""

import io

import numpy as np
from PIL import Image


def gradient(width, height, mode='RGBA'):
    xs = np.linspace(0, 255, width, dtype=np.float32)[np.newaxis, :].repeat(height, axis=0)
    ys = np.linspace(0, 255, height, dtype=np.float32)[:, np.newaxis].repeat(width, axis=1)
    arr = np.stack([xs, ys, np.full_like(xs, 128)], axis=2).astype(np.uint8)
    return Image.fromarray(arr, 'RGB').convert(mode)


def square_on_white(size, square, color=(0, 0, 0), mode='RGBA'):
    """size x size white image with a centered square of `color`."""
    img = Image.new('RGB', (size, size), (255, 255, 255))
    lo = (size - square) // 2
    img.paste(color, (lo, lo, lo + square, lo + square))
    return img.convert(mode)


def dark_pixels(img, threshold=64):
    arr = np.asarray(img.convert('L'))
    return arr < threshold


def centroid(mask):
    ys, xs = np.nonzero(mask)
    return float(xs.mean()), float(ys.mean())


def png_bytes(img):
    buf = io.BytesIO()
    img.save(buf, 'PNG')
    return buf.getvalue()
