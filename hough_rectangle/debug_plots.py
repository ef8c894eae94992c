from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

from hough_rectangle.hough_types import AnyArray, QuadArray, UInt8Array

LOGGER = logging.getLogger(__name__)

# Utils to save debugging images.


def accumulator_to_image(acc: AnyArray) -> UInt8Array:
    """Scale an accumulator (or any non-negative array) to 0..255."""
    acc = np.asarray(acc, dtype=float)
    peak = float(np.max(acc)) if acc.size else 0.0
    if peak <= 0:
        return np.zeros(acc.shape, dtype=np.uint8)
    return np.asarray(np.round(acc * 255.0 / peak), dtype=np.uint8)


def annotate_image(
    img: AnyArray | Image.Image,
    rectangles: Sequence[QuadArray] | None = None,
) -> UInt8Array:
    if isinstance(img, Image.Image):
        img = np.array(img)
    img = np.asarray(np.clip(img, 0, 255), dtype=np.uint8)
    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    else:
        img = img.copy()
    if rectangles:
        cv2.polylines(
            img,
            [np.asarray(np.round(corners), dtype=np.int32) for corners in rectangles],
            True,
            (255, 0, 0),
            1,
        )
    return img


def save_image(file_path: str, img: AnyArray | Image.Image) -> None:
    dir = os.path.dirname(file_path)
    pd = Path(dir).expanduser()
    if not pd.exists():
        pd.mkdir(parents=True)

    if not isinstance(img, Image.Image):
        img = Image.fromarray(img)
    if img.mode == "F":
        # PNG supports greyscale images with 8-bit int pixels.
        img = img.convert("L")

    img.save(file_path)
    LOGGER.info(f"saved: {file_path}")
