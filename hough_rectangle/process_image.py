# Suppress lint errors from uppercase variable names
# ruff: noqa N806, N803

"""
Hough transform variants used for rectangle detection.

The module provides the classic Hough transform, a ring-masked windowed
transform, the tiled composition of windowed transforms over a whole image,
and the enhancement filter that boosts locally dominant accumulator cells.

Conventions shared by every function here:

* Images are 2D float arrays indexed ``[row, col]``. Pixel coordinates are
  measured from the image centre, ``x = col - (W - 1) / 2`` and
  ``y = row - (H - 1) / 2``, so a line is ``rho = x cos(theta) + y sin(theta)``.
* Accumulators have shape ``(rho_bins, theta_bins)``: rows index rho, columns
  index theta, and theta is in degrees.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from scipy import ndimage

from hough_rectangle import matching
from hough_rectangle.errors import InvalidConfigurationError, InvalidImageError
from hough_rectangle.hough_types import (
    BACKGROUND_VALUE,
    EDGE_VALUE,
    Accumulator,
    AnyArray,
    EdgeImage,
    FloatArray,
    IntArray,
    PeakIndices,
    RhoThetaArray,
)

LOGGER = logging.getLogger(__name__)

# Algorithm constants
NORMALISE_SPLIT = EDGE_VALUE / 2.0  # Entries above this become EDGE_VALUE
HALF_TURN_DEGREES = 180.0  # Lines repeat with mirrored rho every 180 degrees
EPS_ANGLE_SPAN = 1e-9  # Tolerance when checking for a full half turn of angles


def _as_2d_float(img: AnyArray, name: str = "img") -> FloatArray:
    img = np.asarray(img)
    if img.ndim != 2:
        raise InvalidImageError(
            f"{name} must be a 2D array, got shape {img.shape}", title="Invalid image"
        )
    return img.astype(np.float64, copy=False)


def normalise_img(img: EdgeImage) -> None:
    """Binarise an edge image in place so that every entry is 0 or 255.

    Entries strictly above half of the 8-bit range become 255 and everything
    else becomes 0. Because the split value is fixed, the operation is
    idempotent.

    Args:
        img: 2D floating point array, modified in place.

    Raises:
        InvalidImageError: if ``img`` is not a 2D floating point numpy array.
    """
    if not isinstance(img, np.ndarray) or not np.issubdtype(img.dtype, np.floating):
        raise InvalidImageError(
            "normalise_img needs a floating point numpy array", title="Invalid image"
        )
    if img.ndim != 2:
        raise InvalidImageError(
            f"img must be a 2D array, got shape {img.shape}", title="Invalid image"
        )
    edges = img > NORMALISE_SPLIT
    img[edges] = EDGE_VALUE
    img[~edges] = BACKGROUND_VALUE


def linear_spaced_array(a: float, b: float, n: int) -> FloatArray:
    """Return ``n`` evenly spaced values from ``a`` to ``b`` inclusive.

    A single bin has no spacing, so ``n == 1`` returns ``[a]``.

    Raises:
        InvalidConfigurationError: if ``n < 1``.
    """
    if n < 1:
        raise InvalidConfigurationError(
            f"Need at least one bin, got {n}", title="Invalid bin count"
        )
    if n == 1:
        return np.array([float(a)])
    return np.linspace(float(a), float(b), int(n))


def find_local_maximum(hough: AnyArray, threshold: float) -> PeakIndices:
    """Find the positions of all cells strictly above ``threshold``.

    No suppression of neighbouring cells is performed.

    Returns:
        Integer array of shape (N, 2) holding ``(row, col)`` pairs in row-major
        scan order.
    """
    return np.argwhere(np.asarray(hough) > threshold)


def ring(img: AnyArray, r_min: float, r_max: float) -> FloatArray:
    """Zero every cell whose distance from the matrix centre is outside
    ``[r_min, r_max]``.

    The centre is ``((H - 1) / 2, (W - 1) / 2)`` and distances are measured in
    cells. The input is not modified.
    """
    img = _as_2d_float(img)
    height, width = img.shape
    rows = np.arange(height)[:, None] - (height - 1) / 2
    cols = np.arange(width)[None, :] - (width - 1) / 2
    distance = np.hypot(rows, cols)
    inside = (distance >= r_min) & (distance <= r_max)
    return np.where(inside, img, 0.0)


def max_rho(shape: Sequence[int]) -> float:
    """Largest |rho| reachable by a pixel of an image with this shape."""
    height, width = shape[:2]
    return float(np.hypot(height - 1, width - 1) / 2)


def _pad_theta_axis(hough: Accumulator, pad: int, wraps: bool) -> Accumulator:
    """Pad the theta columns of an accumulator by ``pad`` on each side.

    When ``wraps`` is set the columns are continued across the +/-90 degree
    boundary: the angle before the first column is the angle before the last
    one, with rho mirrored. The first and last columns describe the same
    lines, so the last column is skipped when wrapping.
    """
    rho_bins, theta_bins = hough.shape
    if not wraps or theta_bins - 1 < pad:
        zeros = np.zeros((rho_bins, pad))
        return np.concatenate([zeros, hough, zeros], axis=1)
    before = hough[::-1, theta_bins - 1 - pad : theta_bins - 1]
    after = hough[::-1, 1 : 1 + pad]
    return np.concatenate([before, hough, after], axis=1)


@dataclass(frozen=True, eq=False)
class HoughRectangle:
    """Fixed Hough configuration plus the image it was built for.

    The angle set and the radius axis of ``img`` are derived once at
    construction. Every transform is a pure function of its image argument
    and this configuration, and returns a freshly allocated array.
    """

    img: EdgeImage
    theta_bins: int = 256
    rho_bins: int = 256
    theta_min: float = -90.0
    theta_max: float = 90.0
    thetas: FloatArray = field(init=False, repr=False)
    rho_axis: FloatArray = field(init=False, repr=False)
    _cos_thetas: FloatArray = field(init=False, repr=False)
    _sin_thetas: FloatArray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        for name in ("theta_bins", "rho_bins"):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise InvalidConfigurationError(
                    f"{name} must be a positive integer, got {value}",
                    title="Invalid bin count",
                )
            object.__setattr__(self, name, int(value))
        if not self.theta_min < self.theta_max:
            raise InvalidConfigurationError(
                f"theta_min ({self.theta_min}) must be below theta_max ({self.theta_max})",
                title="Invalid angle range",
            )

        img = _as_2d_float(self.img).copy()
        img.setflags(write=False)
        object.__setattr__(self, "img", img)

        thetas = linear_spaced_array(self.theta_min, self.theta_max, self.theta_bins)
        thetas.setflags(write=False)
        object.__setattr__(self, "thetas", thetas)
        object.__setattr__(self, "_cos_thetas", np.cos(np.radians(thetas)))
        object.__setattr__(self, "_sin_thetas", np.sin(np.radians(thetas)))
        object.__setattr__(self, "rho_axis", self.radius_axis(img.shape))

    @property
    def theta_wraps(self) -> bool:
        """Whether the angle set covers exactly half a turn."""
        span = self.theta_max - self.theta_min
        return self.theta_bins > 1 and abs(span - HALF_TURN_DEGREES) < EPS_ANGLE_SPAN

    def with_bins(
        self,
        theta_bins: int | None = None,
        rho_bins: int | None = None,
        img: EdgeImage | None = None,
    ) -> HoughRectangle:
        """Derive a context sharing this angle range with other bin counts."""
        return HoughRectangle(
            self.img if img is None else img,
            theta_bins=self.theta_bins if theta_bins is None else theta_bins,
            rho_bins=self.rho_bins if rho_bins is None else rho_bins,
            theta_min=self.theta_min,
            theta_max=self.theta_max,
        )

    def radius_axis(self, shape: Sequence[int]) -> FloatArray:
        """Radius bin values for an image of the given shape.

        Index 0 is ``-max_rho(shape)`` and the last index ``+max_rho(shape)``.
        """
        rho_limit = max_rho(shape)
        axis = linear_spaced_array(-rho_limit, rho_limit, self.rho_bins)
        axis.setflags(write=False)
        return axis

    def _rho_indices(self, rhos: FloatArray, rho_limit: float) -> IntArray:
        if self.rho_bins == 1 or rho_limit == 0.0:
            return np.zeros(rhos.shape, dtype=int)
        rho_step = 2.0 * rho_limit / (self.rho_bins - 1)
        indices = np.rint((rhos + rho_limit) / rho_step).astype(int)
        return np.clip(indices, 0, self.rho_bins - 1)

    def hough_transform(self, img: EdgeImage) -> Accumulator:
        """Apply the classic Hough transform.

        Every non-zero pixel casts one vote per angle, at the radius bin
        nearest to ``x cos(theta) + y sin(theta)``.

        Args:
            img: 2D edge image.

        Returns:
            Accumulator of shape ``(rho_bins, theta_bins)``.
        """
        img = _as_2d_float(img)
        rows, cols = np.nonzero(img)
        if len(rows) == 0:
            return np.zeros((self.rho_bins, self.theta_bins))

        height, width = img.shape
        xs = cols - (width - 1) / 2
        ys = rows - (height - 1) / 2
        rhos = np.outer(xs, self._cos_thetas) + np.outer(ys, self._sin_thetas)
        rho_indices = self._rho_indices(rhos, max_rho(img.shape))

        # Flatten (rho, theta) cells so the votes can be counted in one pass.
        cell_indices = rho_indices * self.theta_bins + np.arange(self.theta_bins)
        votes = np.bincount(
            cell_indices.ravel(), minlength=self.rho_bins * self.theta_bins
        )
        return votes.reshape(self.rho_bins, self.theta_bins).astype(np.float64)

    def ring(self, img: AnyArray, r_min: float, r_max: float) -> FloatArray:
        """Applies a ring on the input matrix, see :func:`ring`."""
        return ring(img, r_min, r_max)

    def windowed_hough(self, img: EdgeImage, r_min: float, r_max: float) -> Accumulator:
        """Hough transform of a single patch after masking it to a ring."""
        return self.hough_transform(ring(img, r_min, r_max))

    def apply_windowed_hough(
        self, img: EdgeImage, L_window: int, r_min: float, r_max: float
    ) -> FloatArray:
        """Tile the image with windowed Hough transforms.

        The image is split into non-overlapping ``L_window`` squares starting
        at the top-left corner; tiles on the bottom and right borders are
        clipped to the image. Each tile of shape ``(h, w)`` is transformed with
        ``rho_bins = h`` and ``theta_bins = w`` so its accumulator occupies
        exactly the tile's own position in the output.

        Returns:
            Array with the same shape as ``img``.
        """
        img = _as_2d_float(img)
        if int(L_window) != L_window or L_window < 1:
            raise InvalidConfigurationError(
                f"L_window must be a positive integer, got {L_window}",
                title="Invalid window size",
            )
        L_window = int(L_window)
        height, width = img.shape
        response = np.zeros((height, width))
        for top in range(0, height, L_window):
            for left in range(0, width, L_window):
                tile = img[top : top + L_window, left : left + L_window]
                tile_height, tile_width = tile.shape
                tile_context = self.with_bins(
                    theta_bins=tile_width, rho_bins=tile_height, img=tile
                )
                response[top : top + tile_height, left : left + tile_width] = (
                    tile_context.windowed_hough(tile, r_min, r_max)
                )
        LOGGER.debug(
            f"windowed hough over {img.shape} with window {L_window} ring [{r_min}, {r_max}]"
        )
        return response

    def enhance_hough(self, hough: Accumulator, h: int, w: int) -> Accumulator:
        """Compute the enhanced Hough transform.

        Each cell ``C`` becomes ``C**2 / mean(C over its neighbourhood)``, which
        favours cells that dominate their surroundings (long isolated edges)
        over diffuse votes. The neighbourhood is the disk
        ``ring(ones((h, w)), 0, max(h, w) / 2)`` measured in accumulator cells.
        Cells with an empty neighbourhood become 0.

        ``h`` and ``w`` size the neighbourhood window, not the output: the
        result always has the shape of ``hough``.

        Args:
            hough: accumulator of shape ``(rho_bins, theta_bins)``.
            h: neighbourhood height in rho cells.
            w: neighbourhood width in theta cells.

        Returns:
            Enhanced accumulator with the same shape as ``hough``.
        """
        if h < 1 or w < 1:
            raise InvalidConfigurationError(
                f"Enhancement neighbourhood must be at least 1x1, got {h}x{w}",
                title="Invalid neighbourhood",
            )
        hough = _as_2d_float(hough, name="hough")
        kernel = ring(np.ones((h, w)), 0, max(h, w) / 2)
        num_cells = np.count_nonzero(kernel)

        pad = w // 2 + 1
        padded = _pad_theta_axis(hough, pad, self.theta_wraps)
        sums = ndimage.correlate(padded, kernel, mode="constant", cval=0.0)
        sums = sums[:, pad:-pad]

        enhanced = np.zeros_like(hough)
        has_mass = sums > 0
        enhanced[has_mass] = num_cells * hough[has_mass] ** 2 / sums[has_mass]
        return enhanced

    def index_rho_theta(
        self, indexes: AnyArray, shape: Sequence[int] | None = None
    ) -> RhoThetaArray:
        """Decode ``(rho_index, theta_index)`` pairs into ``(rho, theta)``.

        Args:
            indexes: integer array of shape (N, 2).
            shape: shape of the image the accumulator was computed from;
                defaults to the context image.

        Returns:
            Float array of shape (N, 2) with rho in pixels and theta in degrees.
        """
        indexes = np.asarray(indexes, dtype=int).reshape(-1, 2)
        rho_axis = self.rho_axis if shape is None else self.radius_axis(shape)
        rho_indices = np.clip(indexes[:, 0], 0, self.rho_bins - 1)
        theta_indices = np.clip(indexes[:, 1], 0, self.theta_bins - 1)
        return np.stack([rho_axis[rho_indices], self.thetas[theta_indices]], axis=1)

    def match_maximums(
        self,
        rho_maxs: Sequence[float],
        theta_maxs: Sequence[float],
        T_t: float,
        T_rho: float,
        T_L: float,
        T_alpha: float,
        heights: Sequence[float] | None = None,
    ) -> list[matching.RectangleHypothesis]:
        """Group line peaks into rectangles, see :func:`matching.match_maximums`."""
        return matching.match_maximums(
            rho_maxs, theta_maxs, T_t, T_rho, T_L, T_alpha, heights=heights
        )
