"""
Core denoising processor module.
Implements clean architecture with separation of concerns.
"""

import cv2
import numpy as np
import time
from typing import Tuple, Optional, Dict, Any
import logging

try:
    from .config import NLMDenoisingConfig, NLMParameters, InvalidParameterError
    from .nlm_filter import nonlocal_means_filter
except ImportError:
    from config import NLMDenoisingConfig, NLMParameters, InvalidParameterError
    from nlm_filter import nonlocal_means_filter


# Used when a video reports no frame rate
DEFAULT_FPS = 25.0


class DenoiseProcessor:
    """Core processor for non-local means denoising."""

    def __init__(self, config: NLMDenoisingConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

        # Processing statistics
        self.stats = self._empty_statistics()

    @staticmethod
    def _empty_statistics() -> Dict[str, Any]:
        return {
            'frames_processed': 0,
            'processing_time': 0.0,
            'avg_fps': 0.0,
            'avg_ms': 0.0,
            'corrections': 0
        }

    def resolve_parameters(self, params: Optional[NLMParameters] = None) -> NLMParameters:
        """Apply the search window policy and validate the parameters."""
        params = params or self.config.nlm

        if params.needs_correction() and self.config.processing.auto_widen_search:
            corrected = params.corrected()
            self.logger.warning(
                f"search W must be > template W "
                f"(setting search W = (template W) + 1 = {corrected.search_window_size})"
            )
            self.stats['corrections'] += 1
            params = corrected

        params.validate()
        return params

    def denoise(self, frame: np.ndarray, params: Optional[NLMParameters] = None) -> np.ndarray:
        """Denoise a single frame with the configured backend."""
        params = self.resolve_parameters(params)

        if self.config.backend == "opencv":
            return self._denoise_opencv(frame, params)

        return nonlocal_means_filter(
            frame,
            params.template_window_size,
            params.search_window_size,
            params.h,
            sigma=params.sigma,
            workers=self.config.processing.workers
        )

    def _denoise_opencv(self, frame: np.ndarray, params: NLMParameters) -> np.ndarray:
        """Use the NLM implementation built into OpenCV."""
        if frame.ndim == 3 and frame.shape[2] == 3:
            # Colour variant works on L*a*b with separate luminance/colour strengths
            return cv2.fastNlMeansDenoisingColored(
                frame, None,
                h=params.h,
                hColor=params.h_color,
                templateWindowSize=params.template_window_size,
                searchWindowSize=params.search_window_size
            )

        if frame.ndim not in (2, 3) or (frame.ndim == 3 and frame.shape[2] != 1):
            raise InvalidParameterError(f"Unsupported image shape {frame.shape}, expected 1 or 3 channels")

        denoised = cv2.fastNlMeansDenoising(
            frame, None,
            h=params.h,
            templateWindowSize=params.template_window_size,
            searchWindowSize=params.search_window_size
        )
        return denoised.reshape(frame.shape)

    def process_frame(self, frame: np.ndarray, params: Optional[NLMParameters] = None) -> Dict[str, Any]:
        """Process a single frame and return all results."""
        start_time = time.time()

        params = self.resolve_parameters(params)
        denoised = self.denoise(frame, params)

        # Update statistics
        processing_time = time.time() - start_time
        self.stats['frames_processed'] += 1
        self.stats['processing_time'] += processing_time
        if self.stats['processing_time'] > 0:
            self.stats['avg_fps'] = self.stats['frames_processed'] / self.stats['processing_time']
        self.stats['avg_ms'] = 1000.0 * self.stats['processing_time'] / self.stats['frames_processed']

        self.logger.debug(f"time: {1000.0 * processing_time:.1f} ms")

        return {
            'original': frame,
            'denoised': denoised,
            'parameters': params,
            'processing_time': processing_time,
            'frame_number': self.stats['frames_processed']
        }

    def get_statistics(self) -> Dict[str, Any]:
        """Get processing statistics."""
        return self.stats.copy()

    def reset_statistics(self):
        """Reset processing statistics."""
        self.stats = self._empty_statistics()


class VideoProcessor:
    """High-level orchestrator for image, video and camera sources."""

    def __init__(self, config: NLMDenoisingConfig):
        self.config = config
        self.processor = DenoiseProcessor(config)
        self.logger = logging.getLogger(__name__)

        # Capture and writer
        self.cap = None
        self.writer = None
        self.still_image = None

        self.fps = DEFAULT_FPS
        self.width = 0
        self.height = 0
        self.total_frames = 0

    @property
    def is_still_image(self) -> bool:
        return self.still_image is not None

    def open_source(self) -> bool:
        """
        Open the configured source.

        A path that decodes as an image is used as a still image; any other
        path is opened as a video file. Without a path the camera is used.
        """
        source = self.config.source.source

        if source is not None:
            image = cv2.imread(source, cv2.IMREAD_COLOR)
            if image is not None:
                self.still_image = image
                self.height, self.width = image.shape[:2]
                self.total_frames = 1
                self.logger.info(f"Image info: {self.width}x{self.height}")
                return True
            self.cap = cv2.VideoCapture(source)
        else:
            self.cap = cv2.VideoCapture(self.config.source.camera_index)

        if not self.cap.isOpened():
            target = source if source is not None else f"camera {self.config.source.camera_index}"
            self.logger.error(f"Failed to open source: {target}")
            return False

        # Get video properties
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        self.fps = fps if fps > 0 else DEFAULT_FPS
        self.width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.total_frames = max(0, int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT)))

        self.logger.info(f"Video info: {self.width}x{self.height}, {self.fps} FPS, {self.total_frames} frames")
        return True

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Read the next frame; a still image is returned on every call."""
        if self.is_still_image:
            return True, self.still_image.copy()
        if self.cap is None:
            return False, None
        return self.cap.read()

    def setup_video_writer(self) -> bool:
        """Setup video writer if output path is specified."""
        if not self.config.source.output_path or self.is_still_image:
            return True

        fourcc = cv2.VideoWriter_fourcc(*self.config.source.output_format)
        self.writer = cv2.VideoWriter(
            self.config.source.output_path,
            fourcc,
            self.fps,
            (self.width, self.height)
        )

        if not self.writer.isOpened():
            self.logger.error(f"Failed to open video writer: {self.config.source.output_path}")
            return False

        return True

    def write_frame(self, frame: np.ndarray):
        if self.writer is not None:
            self.writer.write(frame)

    def cleanup(self):
        """Cleanup resources."""
        if self.cap:
            self.cap.release()
        if self.writer:
            self.writer.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()


def denoise_image_file(
    input_path: str,
    output_path: str,
    config: NLMDenoisingConfig,
    processor: Optional[DenoiseProcessor] = None
) -> np.ndarray:
    """Denoise a single image file and write the result."""
    image = cv2.imread(input_path, cv2.IMREAD_COLOR)
    if image is None:
        raise IOError(f"Could not read image: {input_path}")

    processor = processor or DenoiseProcessor(config)
    denoised = processor.process_frame(image)["denoised"]

    if not cv2.imwrite(output_path, denoised):
        raise IOError(f"Could not write image: {output_path}")

    logging.getLogger(__name__).info(f"Saved denoised image to {output_path}")
    return denoised
