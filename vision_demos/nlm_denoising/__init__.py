"""
Non-Local Means Denoising Module

Brute-force non-local means filtering for images, video files and cameras,
with OpenCV's built-in implementation available for comparison.

Main Components:
- NLMDenoisingConfig: Configuration management
- nonlocal_means_filter: Hand-written NLM kernel (row-parallel)
- DenoiseProcessor: Per-frame denoising with either backend
- VideoProcessor: Image / video / camera source orchestrator
- DenoiseVisualizationRenderer: Display windows and trackbars
- StatisticsReporter: Results reporting

Example Usage:
    from vision_demos.nlm_denoising import nonlocal_means_filter

    denoised = nonlocal_means_filter(image, template_window_size=3,
                                     search_window_size=7, h=10.0)
"""

__version__ = "1.0.0"
__all__ = [
    "InvalidParameterError",
    "NLMParameters",
    "NLMDenoisingConfig",
    "build_weight_table",
    "nonlocal_means_filter",
    "DenoiseProcessor",
    "VideoProcessor",
    "denoise_image_file",
    "TrackbarState",
    "DenoiseVisualizationRenderer",
    "StatisticsReporter"
]

# Import main classes for easy access
from .config import InvalidParameterError, NLMParameters, NLMDenoisingConfig
from .nlm_filter import build_weight_table, nonlocal_means_filter
from .denoise_processor import DenoiseProcessor, VideoProcessor, denoise_image_file
from .visualizer import TrackbarState, DenoiseVisualizationRenderer, StatisticsReporter
