# Suppress lint errors from uppercase variable names
# ruff: noqa N806, N803

"""
Grouping of Hough line peaks into rectangle hypotheses.

Peaks are found in a window centred on a candidate rectangle, so opposite
sides of the rectangle show up as two parallel lines at radii ``+xi`` and
``-xi``. Such a pair is an *extended peak* ``(alpha, xi)``. Two extended
peaks whose angles differ by 90 degrees form a rectangle.

Angles are in degrees. A line ``(rho, theta)`` is the same line as
``(-rho, theta + 180)``, which matters for peaks near the +/-90 degree ends of
the angle axis.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from hough_rectangle.errors import InvalidConfigurationError
from hough_rectangle.hough_types import QuadArray

LOGGER = logging.getLogger(__name__)

HALF_TURN_DEGREES = 180.0
QUARTER_TURN_DEGREES = 90.0


@dataclass(frozen=True)
class LineCandidate:
    """A decoded accumulator peak."""

    rho: float
    theta: float
    height: float = 1.0


@dataclass(frozen=True)
class ExtendedPeak:
    """Two parallel lines placed symmetrically about the window centre."""

    alpha: float  # Common normal angle, in [-90, 90)
    xi: float  # Half the distance between the lines
    height: float  # Mean peak height of the two lines


@dataclass(frozen=True)
class RectangleHypothesis:
    """A rectangle centred on the window it was detected in.

    The sides whose normal points along ``theta`` sit at distance ``rho`` on
    either side of the centre and are ``2 * half_length`` long. The other two
    sides are therefore at distance ``half_length`` along ``theta + 90``.
    ``score`` is the mean peak height of the four sides and is only used for
    ranking.
    """

    theta: float
    rho: float
    half_length: float
    score: float = 0.0

    def corners(self, center: Sequence[float] = (0.0, 0.0)) -> QuadArray:
        """Returns the four (x, y) corners, in order around the rectangle."""
        angle = np.radians(self.theta)
        normal = np.array([np.cos(angle), np.sin(angle)])
        direction = np.array([-np.sin(angle), np.cos(angle)])
        center_pt = np.asarray(center, dtype=float)
        offset_n = self.rho * normal
        offset_d = self.half_length * direction
        return np.array(
            [
                center_pt + offset_n + offset_d,
                center_pt + offset_n - offset_d,
                center_pt - offset_n - offset_d,
                center_pt - offset_n + offset_d,
            ]
        )


def normalize_angle(theta: float) -> float:
    """Map a line normal angle into [-90, 90)."""
    return (theta + QUARTER_TURN_DEGREES) % HALF_TURN_DEGREES - QUARTER_TURN_DEGREES


def align_line(rho: float, theta: float, reference_theta: float) -> tuple[float, float]:
    """Re-express a line so its angle is within 90 degrees of a reference."""
    while theta - reference_theta > QUARTER_TURN_DEGREES:
        theta -= HALF_TURN_DEGREES
        rho = -rho
    while reference_theta - theta > QUARTER_TURN_DEGREES:
        theta += HALF_TURN_DEGREES
        rho = -rho
    return rho, theta


def _unwrap_angle(alpha: float, reference: float) -> float:
    return align_line(0.0, alpha, reference)[1]


def pair_parallel_lines(
    candidates: Sequence[LineCandidate],
    theta_tolerance: float,
    rho_tolerance: float,
    length_tolerance: float,
) -> list[ExtendedPeak]:
    """Find every pair of lines that could be opposite sides of a rectangle.

    A pair qualifies when the lines are parallel within ``theta_tolerance``,
    their radii cancel within ``rho_tolerance`` (the lines are symmetric about
    the centre), they are more than ``rho_tolerance`` apart, and their heights
    agree within ``length_tolerance`` relative to the mean height.
    """
    peaks = []
    for i, first in enumerate(candidates):
        for second in candidates[i + 1 :]:
            rho, theta = align_line(second.rho, second.theta, first.theta)
            if abs(first.theta - theta) > theta_tolerance:
                continue
            if abs(first.rho + rho) > rho_tolerance:
                continue
            separation = abs(first.rho - rho)
            if separation <= rho_tolerance:
                continue
            mean_height = (first.height + second.height) / 2
            if abs(first.height - second.height) > length_tolerance * mean_height:
                continue
            peaks.append(
                ExtendedPeak(
                    alpha=normalize_angle((first.theta + theta) / 2),
                    xi=separation / 2,
                    height=mean_height,
                )
            )
    return peaks


def _representative(cluster: list[ExtendedPeak]) -> ExtendedPeak:
    reference = cluster[0].alpha
    alphas = [_unwrap_angle(peak.alpha, reference) for peak in cluster]
    return ExtendedPeak(
        alpha=normalize_angle(float(np.mean(alphas))),
        xi=float(np.mean([peak.xi for peak in cluster])),
        height=float(np.mean([peak.height for peak in cluster])),
    )


def _merge_by_separation(
    group: list[ExtendedPeak], rho_tolerance: float
) -> list[ExtendedPeak]:
    ordered = sorted(group, key=lambda p: (p.xi, p.alpha, p.height))
    clusters = [[ordered[0]]]
    for peak in ordered[1:]:
        if peak.xi - clusters[-1][-1].xi <= rho_tolerance:
            clusters[-1].append(peak)
        else:
            clusters.append([peak])
    return [_representative(cluster) for cluster in clusters]


def cluster_extended_peaks(
    peaks: Sequence[ExtendedPeak], theta_tolerance: float, rho_tolerance: float
) -> list[ExtendedPeak]:
    """Merge extended peaks that describe the same pair of sides.

    Peaks are chained together when consecutive angles are within
    ``theta_tolerance`` (wrapping across +/-90 degrees), then each angle group
    is split wherever consecutive separations differ by more than
    ``rho_tolerance``. Each cluster is replaced by its mean.
    """
    if not peaks:
        return []
    ordered = sorted(peaks, key=lambda p: (p.alpha, p.xi, p.height))
    groups = [[ordered[0]]]
    for peak in ordered[1:]:
        if peak.alpha - groups[-1][-1].alpha <= theta_tolerance:
            groups[-1].append(peak)
        else:
            groups.append([peak])

    # The first and last groups touch across the +/-90 degree boundary.
    if (
        len(groups) > 1
        and groups[0][0].alpha + HALF_TURN_DEGREES - groups[-1][-1].alpha
        <= theta_tolerance
    ):
        groups[0] = groups.pop() + groups[0]

    merged = []
    for group in groups:
        merged.extend(_merge_by_separation(group, rho_tolerance))
    return sorted(merged, key=lambda p: (p.alpha, p.xi, p.height))


def match_maximums(
    rho_maxs: Sequence[float],
    theta_maxs: Sequence[float],
    T_t: float,
    T_rho: float,
    T_L: float,
    T_alpha: float,
    heights: Sequence[float] | None = None,
) -> list[RectangleHypothesis]:
    """Match line peaks into rectangle hypotheses.

    Args:
        rho_maxs: peak radii, in pixels from the window centre.
        theta_maxs: peak angles in degrees, parallel to ``rho_maxs``.
        T_t: angular tolerance for two lines to count as parallel.
        T_rho: tolerance on ``|rho_i + rho_j|`` for a pair to be centred; pairs
            closer together than this are treated as the same line.
        T_L: relative tolerance on the heights of paired peaks.
        T_alpha: tolerance on the 90 degree angle between two side pairs.
        heights: optional accumulator values at the peaks. Without them every
            peak has height 1 and the height test always passes.

    Returns:
        One hypothesis per matched pair of side pairs. The output depends only
        on the set of peaks, not on their order. No match gives an empty list.
    """
    for name, value in (("T_t", T_t), ("T_rho", T_rho), ("T_L", T_L), ("T_alpha", T_alpha)):
        if value < 0:
            raise InvalidConfigurationError(
                f"{name} must be non-negative, got {value}", title="Invalid tolerance"
            )
    rhos = np.asarray(rho_maxs, dtype=float).ravel()
    thetas = np.asarray(theta_maxs, dtype=float).ravel()
    if heights is None:
        peak_heights = np.ones_like(rhos)
    else:
        peak_heights = np.asarray(heights, dtype=float).ravel()
    if not len(rhos) == len(thetas) == len(peak_heights):
        raise ValueError(
            f"Got {len(rhos)} radii, {len(thetas)} angles and {len(peak_heights)} heights"
        )

    candidates = sorted(
        (
            LineCandidate(rho=float(rho), theta=float(theta), height=float(height))
            for rho, theta, height in zip(rhos, thetas, peak_heights)
        ),
        key=lambda c: (c.theta, c.rho, c.height),
    )
    extended_peaks = pair_parallel_lines(candidates, T_t, T_rho, T_L)
    side_pairs = cluster_extended_peaks(extended_peaks, T_t, T_rho)
    LOGGER.debug(
        f"{len(candidates)} lines gave {len(extended_peaks)} parallel pairs, "
        f"{len(side_pairs)} after merging"
    )

    rectangles = []
    for i, first in enumerate(side_pairs):
        for second in side_pairs[i + 1 :]:
            difference = abs(first.alpha - second.alpha) % HALF_TURN_DEGREES
            difference = min(difference, HALF_TURN_DEGREES - difference)
            if abs(difference - QUARTER_TURN_DEGREES) > T_alpha:
                continue
            rectangles.append(
                RectangleHypothesis(
                    theta=first.alpha,
                    rho=first.xi,
                    half_length=second.xi,
                    score=(first.height + second.height) / 2,
                )
            )
    return rectangles
