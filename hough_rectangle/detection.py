"""
Rectangle detection pipelines built from the Hough transform variants.

Two paths produce line candidates that feed the same matcher:

1. Global: Hough transform of the whole image → enhancement → peaks.
   Rectangles are found relative to the image centre.
2. Windowed: a square window slides over the image; each placement is ring
   masked, transformed, enhanced and thresholded, and the matcher looks for
   rectangles centred on the window.
"""

from __future__ import annotations

import logging
import os
import pathlib
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from hough_rectangle import debug_plots
from hough_rectangle.errors import InvalidImageError
from hough_rectangle.hough_types import Accumulator, AnyArray, EdgeImage, QuadArray
from hough_rectangle.matching import LineCandidate, RectangleHypothesis, match_maximums
from hough_rectangle.process_image import (
    HoughRectangle,
    find_local_maximum,
    normalise_img,
)
from hough_rectangle.settings import DetectionSettings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectedRectangle:
    """A rectangle hypothesis placed in image coordinates."""

    center_x: float
    center_y: float
    hypothesis: RectangleHypothesis

    @property
    def score(self) -> float:
        return self.hypothesis.score

    def corners(self) -> QuadArray:
        """Returns the four (x, y) image corners, in order around the rectangle."""
        return self.hypothesis.corners((self.center_x, self.center_y))


def lines_from_accumulator(
    context: HoughRectangle,
    hough: Accumulator,
    shape: Sequence[int],
    settings: DetectionSettings,
) -> list[LineCandidate]:
    """Enhance an accumulator and decode its strongest cells into lines.

    Cells above ``settings.peak_threshold_fraction`` of the enhanced maximum
    become candidates; their enhanced values are kept as peak heights.
    """
    enhanced = context.enhance_hough(
        hough, settings.enhance_rho_size, settings.enhance_theta_size
    )
    peak_value = float(np.max(enhanced)) if enhanced.size else 0.0
    if peak_value <= 0.0:
        return []
    indexes = find_local_maximum(enhanced, settings.peak_threshold_fraction * peak_value)
    rho_thetas = context.index_rho_theta(indexes, shape=shape)
    heights = enhanced[indexes[:, 0], indexes[:, 1]]
    return [
        LineCandidate(rho=float(rho), theta=float(theta), height=float(height))
        for (rho, theta), height in zip(rho_thetas, heights)
    ]


def match_lines(
    lines: Sequence[LineCandidate], settings: DetectionSettings
) -> list[RectangleHypothesis]:
    if not lines:
        return []
    return match_maximums(
        [line.rho for line in lines],
        [line.theta for line in lines],
        settings.theta_tolerance,
        settings.rho_tolerance,
        settings.length_tolerance,
        settings.perpendicular_tolerance,
        heights=[line.height for line in lines],
    )


def detect_lines(
    context: HoughRectangle, img: EdgeImage, settings: DetectionSettings
) -> list[LineCandidate]:
    """Global path: Hough transform, enhancement and peak decoding."""
    img = np.asarray(img)
    lines = lines_from_accumulator(
        context, context.hough_transform(img), img.shape, settings
    )
    LOGGER.debug(f"found {len(lines)} line candidates in image of shape {img.shape}")
    return lines


def detect_rectangles_global(
    img: EdgeImage, settings: DetectionSettings | None = None
) -> list[RectangleHypothesis]:
    """Find rectangles centred on the image centre using the global transform."""
    settings = settings or DetectionSettings()
    settings.validate()
    context = settings.make_context(img)
    return match_lines(detect_lines(context, context.img, settings), settings)


def detect_rectangles_in_window(
    context: HoughRectangle, patch: EdgeImage, settings: DetectionSettings
) -> list[RectangleHypothesis]:
    """Windowed path for a single patch.

    The patch is ring masked with the configured radii before the transform,
    and hypotheses are relative to the patch centre.
    """
    patch = np.asarray(patch)
    hough = context.windowed_hough(
        patch, settings.ring_min_radius, settings.ring_max_radius
    )
    lines = lines_from_accumulator(context, hough, patch.shape, settings)
    return match_lines(lines, settings)


def _orientation_difference(theta1: float, theta2: float) -> float:
    # A rectangle looks the same after a quarter turn.
    difference = abs(theta1 - theta2) % 90.0
    return min(difference, 90.0 - difference)


def _is_duplicate(
    a: DetectedRectangle, b: DetectedRectangle, settings: DetectionSettings
) -> bool:
    distance = np.hypot(a.center_x - b.center_x, a.center_y - b.center_y)
    if distance > settings.rho_tolerance:
        return False
    if (
        _orientation_difference(a.hypothesis.theta, b.hypothesis.theta)
        > settings.theta_tolerance
    ):
        return False
    sides_a = sorted((a.hypothesis.rho, a.hypothesis.half_length))
    sides_b = sorted((b.hypothesis.rho, b.hypothesis.half_length))
    return bool(np.all(np.abs(np.subtract(sides_a, sides_b)) <= settings.rho_tolerance))


def suppress_duplicate_detections(
    detections: Sequence[DetectedRectangle], settings: DetectionSettings
) -> list[DetectedRectangle]:
    """Keep the best scoring detection among near-identical ones.

    Two detections are duplicates when their centres are within
    ``rho_tolerance``, their orientations within ``theta_tolerance`` and their
    side lengths within ``rho_tolerance``.
    """
    ordered = sorted(
        detections,
        key=lambda d: (-d.score, d.center_y, d.center_x, d.hypothesis.theta),
    )
    kept: list[DetectedRectangle] = []
    for detection in ordered:
        if not any(_is_duplicate(detection, other, settings) for other in kept):
            kept.append(detection)
    return kept


def detect_rectangles(
    image: AnyArray,
    settings: DetectionSettings | None = None,
    debug_dir: str | None = None,
) -> list[DetectedRectangle]:
    """Detect rectangles anywhere in an edge image.

    A ``settings.window_size`` square window is moved over every placement
    that fits inside the image, ``settings.window_stride`` pixels apart.
    Placements without edge pixels are skipped. Each remaining placement runs
    the windowed path and its hypotheses are moved into image coordinates.

    Args:
        image: 2D edge image; a normalised copy is used, the input is untouched.
        settings: detection settings, defaults to ``DetectionSettings()``.
        debug_dir: Optional directory for saving debug images.

    Returns:
        Detections after duplicate suppression, best score first.
    """
    settings = settings or DetectionSettings()
    settings.validate()

    edges = np.array(image, dtype=np.float64)
    if edges.ndim != 2:
        raise InvalidImageError(
            f"image must be a 2D array, got shape {edges.shape}", title="Invalid image"
        )
    normalise_img(edges)

    height, width = edges.shape
    size = settings.window_size
    if height < size or width < size:
        LOGGER.debug(f"image {edges.shape} is smaller than the {size} pixel window")
        return []

    context = settings.make_context(np.zeros((size, size)))
    half_window = (size - 1) / 2
    detections = []
    windows_checked = 0
    for top in range(0, height - size + 1, settings.window_stride):
        for left in range(0, width - size + 1, settings.window_stride):
            patch = edges[top : top + size, left : left + size]
            if not np.any(patch):
                continue
            windows_checked += 1
            for hypothesis in detect_rectangles_in_window(context, patch, settings):
                detections.append(
                    DetectedRectangle(
                        center_x=left + half_window,
                        center_y=top + half_window,
                        hypothesis=hypothesis,
                    )
                )

    result = suppress_duplicate_detections(detections, settings)
    LOGGER.debug(
        f"checked {windows_checked} windows, {len(detections)} detections, "
        f"{len(result)} after suppression"
    )

    if debug_dir is not None:
        p = pathlib.Path(debug_dir).expanduser()
        p.mkdir(parents=True, exist_ok=True)
        debug_dir = str(p)
        LOGGER.info(f"logging to debug dir {debug_dir}")
        debug_plots.save_image(
            os.path.join(debug_dir, "edges.png"), edges.astype(np.uint8)
        )
        mosaic = context.apply_windowed_hough(
            edges, size, settings.ring_min_radius, settings.ring_max_radius
        )
        debug_plots.save_image(
            os.path.join(debug_dir, "windowed_hough.png"),
            debug_plots.accumulator_to_image(mosaic),
        )
        debug_plots.save_image(
            os.path.join(debug_dir, "detections.png"),
            debug_plots.annotate_image(edges, [d.corners() for d in result]),
        )

    return result
