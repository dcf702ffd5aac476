"""Tests for the command-line runner"""

import cv2
import numpy as np

from vision_demos.nlm_denoising.config import NLMDenoisingConfig
from vision_demos.nlm_denoising.denoise_processor import DenoiseProcessor
from vision_demos.nlm_denoising.run_nlm_denoising import (
    apply_used_parameters,
    build_config,
    build_parser,
    denoise_interactive_frame,
    main,
)
from vision_demos.nlm_denoising.visualizer import TrackbarState


def write_image(path):
    rng = np.random.default_rng(0)
    image = rng.integers(80, 160, size=(20, 24, 3), dtype=np.uint8)
    cv2.imwrite(str(path), image)
    return image


def write_image_array():
    rng = np.random.default_rng(1)
    return rng.integers(80, 160, size=(12, 14, 3), dtype=np.uint8)


class TestArguments:
    """Test argument parsing into configuration"""

    def test_parameters(self):
        args = build_parser().parse_args(["in.png", "--template", "5", "--search", "11", "--h", "8", "--hc", "6"])
        config = build_config(args)
        assert config.source.source == "in.png"
        assert config.nlm.template_window_size == 5
        assert config.nlm.search_window_size == 11
        assert config.nlm.h == 8.0
        assert config.nlm.h_color == 6.0

    def test_defaults_to_camera(self):
        config = build_config(build_parser().parse_args(["--camera", "2"]))
        assert config.source.source is None
        assert config.source.camera_index == 2
        assert config.processing.auto_widen_search


class TestInteractiveFrames:
    """Test the per-frame steps of the display loop"""

    def test_widened_search_corrected_once(self):
        """The widened search window is written back so later frames need no correction"""
        frame = write_image_array()
        processor = DenoiseProcessor(NLMDenoisingConfig())
        state = TrackbarState(template_window_size=5, search_window_size=3)

        results = None
        for _ in range(5):
            results = denoise_interactive_frame(processor, frame, state.to_parameters(), results)
            apply_used_parameters(state, results)

        assert processor.get_statistics()['corrections'] == 1
        assert processor.get_statistics()['frames_processed'] == 5
        assert state.search_window_size == 6

    def test_unchanged_search_not_written_back(self):
        frame = write_image_array()
        processor = DenoiseProcessor(NLMDenoisingConfig())
        state = TrackbarState(template_window_size=3, search_window_size=5)
        results = denoise_interactive_frame(processor, frame, state.to_parameters())
        assert not apply_used_parameters(state, results)
        assert state.search_window_size == 5

    def test_invalid_slider_keeps_previous_output(self):
        frame = write_image_array()
        config = NLMDenoisingConfig()
        config.processing.auto_widen_search = False
        processor = DenoiseProcessor(config)
        good = TrackbarState(template_window_size=3, search_window_size=5).to_parameters()
        bad = TrackbarState(template_window_size=5, search_window_size=3).to_parameters()

        previous = denoise_interactive_frame(processor, frame, good)
        results = denoise_interactive_frame(processor, frame, bad, previous)

        assert results is previous
        assert processor.get_statistics()['frames_processed'] == 1

    def test_invalid_slider_on_first_frame_shows_input(self):
        frame = write_image_array()
        config = NLMDenoisingConfig()
        config.processing.auto_widen_search = False
        processor = DenoiseProcessor(config)
        bad = TrackbarState(template_window_size=5, search_window_size=3).to_parameters()

        results = denoise_interactive_frame(processor, frame, bad)

        assert results['parameters'] is None
        np.testing.assert_array_equal(results['denoised'], frame)
        assert not apply_used_parameters(TrackbarState(), results)


class TestMain:
    """Test end-to-end headless runs"""

    def test_denoises_image(self, tmp_path):
        source = tmp_path / "in.png"
        target = tmp_path / "out.png"
        write_image(source)

        exit_code = main([str(source), "--no-display", "-o", str(target), "--h", "10"])

        assert exit_code == 0
        assert cv2.imread(str(target)).shape == (20, 24, 3)

    def test_writes_statistics(self, tmp_path):
        source = tmp_path / "in.png"
        stats = tmp_path / "stats.txt"
        write_image(source)

        main([str(source), "--no-display", "-o", str(tmp_path / "out.png"), "--stats-file", str(stats)])

        assert "Total Frames Processed: 1" in stats.read_text()

    def test_headless_requires_output(self, tmp_path):
        source = tmp_path / "in.png"
        write_image(source)
        assert main([str(source), "--no-display"]) == 1

    def test_rejects_narrow_search_without_auto_widen(self, tmp_path):
        source = tmp_path / "in.png"
        write_image(source)
        args = [str(source), "--no-display", "-o", str(tmp_path / "out.png"),
                "--template", "5", "--search", "3", "--no-auto-widen"]
        assert main(args) == 1

    def test_missing_source(self, tmp_path):
        assert main([str(tmp_path / "missing.avi"), "--no-display", "-o", str(tmp_path / "out.avi")]) == 1

    def test_opencv_error_returns_failure(self, tmp_path, monkeypatch):
        source = tmp_path / "in.png"
        write_image(source)

        def fail(self, frame, params=None):
            raise cv2.error("denoising failed")

        monkeypatch.setattr(DenoiseProcessor, "denoise", fail)

        assert main([str(source), "--no-display", "-o", str(tmp_path / "out.png")]) == 1
