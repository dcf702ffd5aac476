"""
Visualization module for non-local means denoising.
Handles all display, trackbar and summary reporting functionality.
"""

import cv2
import numpy as np
import time
from dataclasses import dataclass
from typing import Dict, Any, Optional
import logging

try:
    from .config import NLMDenoisingConfig, NLMParameters
except ImportError:
    from config import NLMDenoisingConfig, NLMParameters


@dataclass
class TrackbarState:
    """Trackbar positions, owned by the caller for the lifetime of the windows."""

    template_window_size: int = 3
    search_window_size: int = 7
    h: int = 3
    h_color: int = 10

    @classmethod
    def from_parameters(cls, params: NLMParameters) -> "TrackbarState":
        return cls(
            template_window_size=params.template_window_size,
            search_window_size=params.search_window_size,
            h=int(round(params.h)),
            h_color=int(round(params.h_color))
        )

    def set(self, name: str, value: int):
        setattr(self, name, int(value))

    def update_from(self, params: NLMParameters) -> bool:
        """Store the search window actually used. Returns True if it changed."""
        if params.search_window_size == self.search_window_size:
            return False
        self.search_window_size = params.search_window_size
        return True

    def to_parameters(self, sigma: float = 0.0) -> NLMParameters:
        """Convert positions to filter parameters; zero positions are raised to 1."""
        return NLMParameters(
            template_window_size=max(1, self.template_window_size),
            search_window_size=max(1, self.search_window_size),
            h=float(max(1, self.h)),
            h_color=float(max(1, self.h_color)),
            sigma=sigma
        )


class DenoiseVisualizationRenderer:
    """Handles visualization and rendering of denoising results."""

    def __init__(self, config: NLMDenoisingConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.colors = {
            'text': (0, 255, 255),   # Yellow
            'text_bg': (0, 0, 0),    # Black
        }

        self.font = cv2.FONT_HERSHEY_SIMPLEX
        self.font_scale = 0.6
        self.thickness = 1

    def setup_windows(self, state: Optional[TrackbarState] = None):
        """Create the display windows and, if a state is given, its trackbars."""
        vis = self.config.visualization
        cv2.namedWindow(vis.original_window, cv2.WINDOW_AUTOSIZE)
        cv2.namedWindow(vis.filtered_window, cv2.WINDOW_AUTOSIZE)

        if state is None or not vis.show_trackbars:
            return

        trackbars = [
            ("template W", 'template_window_size', vis.template_max),
            ("search W", 'search_window_size', vis.search_max),
            ("h", 'h', vis.h_max),
            ("hc", 'h_color', vis.h_color_max),
        ]
        for label, attribute, maximum in trackbars:
            cv2.createTrackbar(
                label, vis.filtered_window,
                min(getattr(state, attribute), maximum), maximum,
                lambda value, attribute=attribute: state.set(attribute, value)
            )

    def set_search_trackbar(self, value: int):
        cv2.setTrackbarPos("search W", self.config.visualization.filtered_window, value)

    def add_info_overlay(self, frame: np.ndarray, info: Dict[str, Any]) -> np.ndarray:
        """Add parameter and timing overlay to frame."""
        result = frame.copy()
        if result.ndim == 2 or result.shape[2] == 1:
            result = cv2.cvtColor(result, cv2.COLOR_GRAY2BGR)

        texts = [f"Frame: {info.get('frame_number', 0)}"]

        params = info.get('parameters')
        if params is not None:
            texts.append(f"T:{params.template_window_size} S:{params.search_window_size} h:{params.h:g}")

        if self.config.visualization.fps_display:
            processing_time = info.get('processing_time', 0)
            texts.append(f"Time: {1000.0 * processing_time:.1f} ms")

        text_height = 22
        cv2.rectangle(result, (5, 5), (260, len(texts) * text_height + 12), self.colors['text_bg'], -1)
        for i, text in enumerate(texts):
            cv2.putText(result, text, (10, 25 + i * text_height), self.font,
                        self.font_scale, self.colors['text'], self.thickness)

        return result

    def create_side_by_side(self, results: Dict[str, Any]) -> np.ndarray:
        """Stack original and denoised frames horizontally for saving."""
        original = results['original']
        denoised = self.add_info_overlay(results['denoised'], results)
        if original.ndim == 2 or original.shape[2] == 1:
            original = cv2.cvtColor(original, cv2.COLOR_GRAY2BGR)
        return np.hstack([original, denoised])

    def compute_wait_ms(self, loop_start: float, still_image: bool = False) -> int:
        """
        Event loop delay taking processing time into account.

        A still image waits indefinitely (0); otherwise the frame period minus
        the time already spent, but never less than the minimum wait.
        """
        if still_image:
            return 0
        vis = self.config.visualization
        elapsed_ms = (time.time() - loop_start) * 1000.0
        return int(max(vis.min_wait_ms, vis.event_loop_delay_ms - elapsed_ms))

    def display(self, results: Dict[str, Any], wait_ms: int) -> str:
        """Show both frames and handle user input. Returns 'quit', 'save' or 'continue'."""
        vis = self.config.visualization
        cv2.imshow(vis.original_window, results['original'])
        cv2.imshow(vis.filtered_window, self.add_info_overlay(results['denoised'], results))

        key = cv2.waitKey(wait_ms) & 0xFF

        if key == ord(vis.exit_key) or key == 27:  # exit key or ESC
            self.logger.info("Keyboard exit requested : exiting now - bye!")
            return "quit"
        if key == ord('s'):
            filename = f"nlm_frame_{results['frame_number']:06d}.png"
            cv2.imwrite(filename, self.create_side_by_side(results))
            self.logger.info(f"Frame saved as {filename}")
            return "save"
        return "continue"

    def close(self):
        cv2.destroyAllWindows()


class StatisticsReporter:
    """Handles statistics reporting and summary generation."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def format_summary(self, stats: Dict[str, Any], config: NLMDenoisingConfig) -> str:
        source = config.source.source or f"camera {config.source.camera_index}"
        lines = [
            "=" * 60,
            "NON-LOCAL MEANS DENOISING SUMMARY",
            "=" * 60,
            f"Source: {source}",
            f"Backend: {config.backend}",
            f"Template Window: {config.nlm.template_window_size}",
            f"Search Window: {config.nlm.search_window_size}",
            f"h: {config.nlm.h:g}",
            f"Total Frames Processed: {stats['frames_processed']}",
            f"Total Processing Time: {stats['processing_time']:.2f}s",
            f"Average Time per Frame: {stats['avg_ms']:.1f} ms",
            f"Average FPS: {stats['avg_fps']:.2f}",
        ]
        if stats.get('corrections'):
            lines.append(f"Search Window Corrections: {stats['corrections']}")
        if config.source.output_path:
            lines.append(f"Output: {config.source.output_path}")
        lines.append("=" * 60)
        return "\n".join(lines)

    def print_summary(self, stats: Dict[str, Any], config: NLMDenoisingConfig):
        """Print processing summary."""
        print("\n" + self.format_summary(stats, config))

    def save_statistics(self, stats: Dict[str, Any], config: NLMDenoisingConfig, output_path: str) -> bool:
        """Save statistics to file."""
        try:
            with open(output_path, 'w') as f:
                f.write(self.format_summary(stats, config) + "\n")
        except OSError as e:
            self.logger.error(f"Failed to save statistics: {e}")
            return False

        self.logger.info(f"Statistics saved to: {output_path}")
        return True
