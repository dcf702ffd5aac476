#!/usr/bin/env python3
"""
Runner script for non-local means denoising of an image, video or camera.

Interactive mode shows the original and filtered frames side by side with
trackbars for the filter parameters; press 'x' (or ESC) to exit, 's' to save
the current frame. With --no-display the denoised result is written to
--output instead.
"""

import argparse
import logging
import sys
import time
from typing import Any, Dict, Optional

import cv2
from tqdm import tqdm

try:
    from .config import NLMDenoisingConfig, InvalidParameterError
    from .denoise_processor import DenoiseProcessor, VideoProcessor, denoise_image_file
    from .visualizer import DenoiseVisualizationRenderer, StatisticsReporter, TrackbarState
except ImportError:
    from config import NLMDenoisingConfig, InvalidParameterError
    from denoise_processor import DenoiseProcessor, VideoProcessor, denoise_image_file
    from visualizer import DenoiseVisualizationRenderer, StatisticsReporter, TrackbarState


logger = logging.getLogger("nlm_denoising")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Apply Non-Local Means denoising to an image, video or camera")
    parser.add_argument("source", nargs="?", default=None,
                        help="Image or video file (default: camera)")
    parser.add_argument("--camera", type=int, default=0,
                        help="Camera index used when no source is given (default: 0)")
    parser.add_argument("-o", "--output", type=str, default=None,
                        help="Write the denoised image or video to this path")
    parser.add_argument("--backend", choices=["manual", "opencv"], default="manual",
                        help="manual: hand-written kernel, opencv: cv2.fastNlMeansDenoising")
    parser.add_argument("--template", type=int, default=3, help="Template window size (default: 3)")
    parser.add_argument("--search", type=int, default=7, help="Search window size (default: 7)")
    parser.add_argument("--h", type=float, default=3.0, help="Filter strength (default: 3)")
    parser.add_argument("--hc", type=float, default=10.0,
                        help="Colour filter strength, opencv backend only (default: 10)")
    parser.add_argument("--sigma", type=float, default=0.0,
                        help="Noise standard deviation, 0 to use h (default: 0)")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads for the manual kernel")
    parser.add_argument("--no-auto-widen", action="store_true",
                        help="Reject search <= template instead of widening the search window")
    parser.add_argument("--no-display", action="store_true", help="Process without opening windows")
    parser.add_argument("--stats-file", type=str, default=None, help="Save the processing summary to a file")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def build_config(args: argparse.Namespace) -> NLMDenoisingConfig:
    config = NLMDenoisingConfig(
        source=args.source,
        backend=args.backend,
        output_path=args.output
    )
    config.source.camera_index = args.camera

    config.nlm.template_window_size = args.template
    config.nlm.search_window_size = args.search
    config.nlm.h = args.h
    config.nlm.h_color = args.hc
    config.nlm.sigma = args.sigma

    config.processing.workers = args.workers
    config.processing.auto_widen_search = not args.no_auto_widen
    return config


def denoise_interactive_frame(
    processor: DenoiseProcessor,
    frame,
    params,
    previous: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Denoise one displayed frame.

    Invalid slider positions are logged and the previous output is kept; until
    there is one, the unfiltered frame is shown.
    """
    try:
        return processor.process_frame(frame, params)
    except InvalidParameterError as e:
        logger.warning(f"Keeping previous output: {e}")

    if previous is not None:
        return previous
    return {
        'original': frame,
        'denoised': frame,
        'parameters': None,
        'processing_time': 0.0,
        'frame_number': processor.stats['frames_processed']
    }


def apply_used_parameters(
    state: TrackbarState,
    results: Dict[str, Any],
    renderer: Optional[DenoiseVisualizationRenderer] = None
) -> bool:
    """Write a widened search window back to the slider. Returns True if it moved."""
    params = results.get('parameters')
    if params is None or not state.update_from(params):
        return False
    if renderer is not None:
        renderer.set_search_trackbar(state.search_window_size)
    return True


def run_interactive(processor: VideoProcessor, config: NLMDenoisingConfig) -> int:
    """Display loop: read, denoise, show, until exit key or end of input."""
    renderer = DenoiseVisualizationRenderer(config)
    state = TrackbarState.from_parameters(config.nlm)
    renderer.setup_windows(state)

    print("Controls:")
    print(f"  • Press '{config.visualization.exit_key}' or ESC to quit")
    print("  • Press 's' to save current frame")

    results = None
    try:
        while True:
            loop_start = time.time()

            ret, frame = processor.read_frame()
            if not ret:
                if config.source.source:
                    print("✅ End of video file reached")
                else:
                    print("❌ Error: cannot get next frame from camera")
                break

            if config.visualization.show_trackbars:
                params = state.to_parameters(sigma=config.nlm.sigma)
            else:
                params = config.nlm

            previous = results
            results = denoise_interactive_frame(processor.processor, frame, params, previous)
            if config.visualization.show_trackbars and results is not previous:
                apply_used_parameters(state, results, renderer)
            processor.write_frame(results['denoised'])

            wait_ms = renderer.compute_wait_ms(loop_start, processor.is_still_image)
            if renderer.display(results, wait_ms) == "quit":
                break
    finally:
        renderer.close()

    if processor.is_still_image and config.source.output_path and results is not None:
        cv2.imwrite(config.source.output_path, results['denoised'])
        logger.info(f"Saved denoised image to {config.source.output_path}")

    return 0


def run_headless(processor: VideoProcessor, config: NLMDenoisingConfig) -> int:
    """Denoise every frame into the output file without opening windows."""
    if not config.source.output_path:
        print("❌ Error: --no-display requires --output")
        return 1

    if processor.is_still_image:
        denoise_image_file(config.source.source, config.source.output_path, config,
                           processor=processor.processor)
        return 0

    total = processor.total_frames or None
    with tqdm(total=total, desc="Denoising frames") as pbar:
        while True:
            ret, frame = processor.read_frame()
            if not ret:
                break
            results = processor.processor.process_frame(frame)
            processor.write_frame(results['denoised'])
            pbar.update(1)

    return 0


def main(argv=None) -> int:
    """Run non-local means denoising from the command line."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = build_config(args)
        if not config.processing.auto_widen_search:
            config.nlm.validate()

        logger.info(f"Source: {config.source.source or f'camera {config.source.camera_index}'}")
        logger.info(f"Backend: {config.backend}")
        logger.info(f"Template W: {config.nlm.template_window_size}, Search W: {config.nlm.search_window_size}, "
                    f"h: {config.nlm.h:g}")

        with VideoProcessor(config) as processor:
            if not processor.open_source():
                print("❌ Failed to open source")
                return 1

            if not processor.setup_video_writer():
                print("❌ Failed to setup video writer")
                return 1

            if args.no_display:
                exit_code = run_headless(processor, config)
            else:
                exit_code = run_interactive(processor, config)

            stats = processor.processor.get_statistics()

        reporter = StatisticsReporter()
        reporter.print_summary(stats, config)
        if args.stats_file:
            reporter.save_statistics(stats, config, args.stats_file)

        return exit_code

    except KeyboardInterrupt:
        print("\n⏹️  Processing interrupted by user")
        return 0
    except (ValueError, OSError, cv2.error) as e:
        print(f"❌ Error during processing: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
