import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from hough_rectangle.errors import InvalidConfigurationError
from hough_rectangle.hough_types import EdgeImage
from hough_rectangle.process_image import HoughRectangle

LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".hough_rectangle_settings.json"


@dataclass
class DetectionSettings:
    """Rectangle detection settings."""

    # Hough space quantisation. With the default window, 57 radius bins are
    # roughly one pixel wide and 181 angle bins are one degree apart.
    theta_bins: int = 181
    rho_bins: int = 57
    theta_min: float = -90.0
    theta_max: float = 90.0

    # Sliding window
    window_size: int = 41
    # A window only matches rectangles centred within rho_tolerance / 2 of its
    # own centre, so the stride must not exceed rho_tolerance.
    window_stride: int = 3
    ring_min_radius: float = 0.0
    ring_max_radius: float = 20.0

    # Enhancement and peak finding
    enhance_rho_size: int = 5
    enhance_theta_size: int = 5
    peak_threshold_fraction: float = 0.4

    # Matching tolerances
    theta_tolerance: float = 3.0
    rho_tolerance: float = 3.0
    length_tolerance: float = 0.3
    perpendicular_tolerance: float = 3.0

    def __setattr__(self, name: str, value: Any) -> None:
        """Override setattr to prevent setting non-existent attributes."""
        if not hasattr(self, name) and name not in self.__dataclass_fields__:
            raise AttributeError(f"Setting '{name}' does not exist")
        super().__setattr__(name, value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DetectionSettings":
        """Create DetectionSettings from dictionary, using defaults for missing keys."""
        defaults = cls()
        return cls(
            theta_bins=int(data.get("theta_bins", defaults.theta_bins)),
            rho_bins=int(data.get("rho_bins", defaults.rho_bins)),
            theta_min=float(data.get("theta_min", defaults.theta_min)),
            theta_max=float(data.get("theta_max", defaults.theta_max)),
            window_size=int(data.get("window_size", defaults.window_size)),
            window_stride=int(data.get("window_stride", defaults.window_stride)),
            ring_min_radius=float(data.get("ring_min_radius", defaults.ring_min_radius)),
            ring_max_radius=float(data.get("ring_max_radius", defaults.ring_max_radius)),
            enhance_rho_size=int(data.get("enhance_rho_size", defaults.enhance_rho_size)),
            enhance_theta_size=int(
                data.get("enhance_theta_size", defaults.enhance_theta_size)
            ),
            peak_threshold_fraction=float(
                data.get("peak_threshold_fraction", defaults.peak_threshold_fraction)
            ),
            theta_tolerance=float(data.get("theta_tolerance", defaults.theta_tolerance)),
            rho_tolerance=float(data.get("rho_tolerance", defaults.rho_tolerance)),
            length_tolerance=float(
                data.get("length_tolerance", defaults.length_tolerance)
            ),
            perpendicular_tolerance=float(
                data.get("perpendicular_tolerance", defaults.perpendicular_tolerance)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert DetectionSettings to dictionary for JSON serialization."""
        return asdict(self)

    def validate(self) -> None:
        """Raise InvalidConfigurationError if any setting is unusable."""
        problems = []
        for name in (
            "theta_bins",
            "rho_bins",
            "window_size",
            "window_stride",
            "enhance_rho_size",
            "enhance_theta_size",
        ):
            if getattr(self, name) < 1:
                problems.append(f"{name} must be at least 1")
        if not self.theta_min < self.theta_max:
            problems.append("theta_min must be below theta_max")
        if self.ring_min_radius < 0 or self.ring_max_radius < 0:
            problems.append("ring radii must be non-negative")
        if not 0.0 <= self.peak_threshold_fraction <= 1.0:
            problems.append("peak_threshold_fraction must be between 0 and 1")
        for name in (
            "theta_tolerance",
            "rho_tolerance",
            "length_tolerance",
            "perpendicular_tolerance",
        ):
            if getattr(self, name) < 0:
                problems.append(f"{name} must be non-negative")
        if problems:
            raise InvalidConfigurationError("; ".join(problems), title="Invalid settings")
        if self.window_stride > self.rho_tolerance:
            LOGGER.warning(
                f"window_stride {self.window_stride} exceeds rho_tolerance "
                f"{self.rho_tolerance}: rectangles centred between windows are missed"
            )

    def make_context(self, image: EdgeImage) -> HoughRectangle:
        """Build a HoughRectangle for `image` with these bins and angles."""
        return HoughRectangle(
            image,
            theta_bins=self.theta_bins,
            rho_bins=self.rho_bins,
            theta_min=self.theta_min,
            theta_max=self.theta_max,
        )

    @classmethod
    def load_from_file(cls, file_path: Optional[str] = None) -> "DetectionSettings":
        """Load settings from JSON file."""
        file_path_obj = DEFAULT_SETTINGS_PATH if file_path is None else Path(file_path)

        if file_path_obj.exists():
            try:
                with open(file_path_obj) as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError(f"expected a JSON object, got {type(data).__name__}")
                return cls.from_dict(data)
            except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
                LOGGER.warning(f"Could not read settings from {file_path_obj}: {e}")
                return cls()
        return cls()

    def save_to_file(self, file_path: Optional[str] = None) -> None:
        """Save settings to JSON file."""
        file_path_obj = DEFAULT_SETTINGS_PATH if file_path is None else Path(file_path)

        try:
            with open(file_path_obj, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError:
            LOGGER.warning(f"Could not save settings to {file_path_obj}")
