"""
Configuration module for non-local means denoising.
Centralizes all configuration parameters for clean architecture.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional


class InvalidParameterError(ValueError):
    """Raised when denoising parameters or images cannot be processed."""


BACKENDS = ("manual", "opencv")


@dataclass
class NLMParameters:
    """Filter parameters shared by both denoising backends."""

    template_window_size: int = 3
    search_window_size: int = 7
    h: float = 3.0
    h_color: float = 10.0  # only used by the OpenCV colour backend
    sigma: float = 0.0  # 0 means "use h"

    def validate(self):
        """Raise InvalidParameterError if these parameters are unusable."""
        if self.template_window_size < 1 or self.search_window_size < 1:
            raise InvalidParameterError(
                f"Window sizes must be positive, got template={self.template_window_size}, "
                f"search={self.search_window_size}"
            )
        if self.search_window_size <= self.template_window_size:
            raise InvalidParameterError(
                f"searchWindowSize ({self.search_window_size}) must be larger than "
                f"templateWindowSize ({self.template_window_size})"
            )
        if not math.isfinite(self.h) or self.h <= 0:
            raise InvalidParameterError(f"h must be a positive number, got {self.h}")
        if not math.isfinite(self.sigma) or self.sigma < 0:
            raise InvalidParameterError(f"sigma must be >= 0, got {self.sigma}")

    def needs_correction(self) -> bool:
        return self.search_window_size <= self.template_window_size

    def corrected(self) -> "NLMParameters":
        """Return a copy with the search window widened to template + 1 if needed."""
        if not self.needs_correction():
            return self
        return replace(self, search_window_size=self.template_window_size + 1)


@dataclass
class SourceConfig:
    """Configuration for frame acquisition and output."""

    source: Optional[str] = None  # image or video path, None for camera
    camera_index: int = 0
    output_path: Optional[str] = None
    output_format: str = 'mp4v'


@dataclass
class ProcessingConfig:
    """Configuration for processing parameters."""

    backend: str = "manual"
    workers: Optional[int] = None  # None lets the kernel pick
    auto_widen_search: bool = True


@dataclass
class VisualizationConfig:
    """Configuration for visualization and output."""

    original_window: str = "Original"
    filtered_window: str = "Non Local Means Filter"

    # 40 ms equates to 1000ms / 25fps
    event_loop_delay_ms: int = 40
    min_wait_ms: int = 2
    show_trackbars: bool = True
    fps_display: bool = True

    # Trackbar maxima
    template_max: int = 25
    search_max: int = 50
    h_max: int = 25
    h_color_max: int = 25

    exit_key: str = 'x'


class NLMDenoisingConfig:
    """Main configuration class combining all sub-configurations."""

    def __init__(
        self,
        source: Optional[str] = None,
        backend: str = "manual",
        output_path: Optional[str] = None
    ):
        self.nlm = NLMParameters()
        self.source = SourceConfig(source=source, output_path=output_path)
        self.processing = ProcessingConfig(backend=backend.lower())
        self.visualization = VisualizationConfig()

        # Validate backend
        if self.processing.backend not in BACKENDS:
            raise ValueError(f"Unsupported backend: {backend}. Use manual or opencv")

    @property
    def backend(self) -> str:
        return self.processing.backend
