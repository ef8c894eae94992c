"""
Core type definitions for Hough rectangle detection.

This module defines semantic type aliases used throughout the codebase to
document array shapes and axis conventions.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

# =============================================================================
# Array Types
# =============================================================================

# General-purpose array type aliases for cleaner code
FloatArray = npt.NDArray[np.floating[Any]]  # General floating-point arrays
IntArray = npt.NDArray[np.int_]  # General integer arrays
UInt8Array = npt.NDArray[np.uint8]  # General uint8 arrays
AnyArray = npt.NDArray[Any]  # Generic arrays when dtype is mixed/unknown

# Shape-constrained arrays for better type safety
EdgeImage = npt.NDArray[np.floating[Any]]  # Shape: (H, W) - values in {0, 255}
Accumulator = npt.NDArray[np.float64]  # Shape: (rho_bins, theta_bins)
PeakIndices = npt.NDArray[np.int_]  # Shape: (N, 2) - (rho_index, theta_index)
RhoThetaArray = npt.NDArray[np.float64]  # Shape: (N, 2) - (rho, theta degrees)
QuadArray = npt.NDArray[np.float64]  # Shape: (4, 2) - four (x, y) corner points

# =============================================================================
# Constants
# =============================================================================

# Binary edge images hold exactly these two values once normalised.
EDGE_VALUE = 255.0
BACKGROUND_VALUE = 0.0
