"""Tests for denoising configuration"""

import pytest

from vision_demos.nlm_denoising.config import (
    InvalidParameterError,
    NLMDenoisingConfig,
    NLMParameters,
)
from vision_demos.nlm_denoising.visualizer import TrackbarState


class TestNLMParameters:
    """Test parameter validation and correction"""

    def test_defaults_are_valid(self):
        NLMParameters().validate()

    @pytest.mark.parametrize("template,search", [(5, 3), (5, 5), (0, 7), (3, 0)])
    def test_bad_window_sizes(self, template, search):
        params = NLMParameters(template_window_size=template, search_window_size=search)
        with pytest.raises(InvalidParameterError):
            params.validate()

    def test_negative_sigma(self):
        with pytest.raises(InvalidParameterError):
            NLMParameters(sigma=-1.0).validate()

    def test_error_is_value_error(self):
        assert issubclass(InvalidParameterError, ValueError)

    def test_corrected_widens_search(self):
        params = NLMParameters(template_window_size=5, search_window_size=3)
        corrected = params.corrected()
        assert corrected.search_window_size == 6
        assert corrected.template_window_size == 5
        assert params.search_window_size == 3
        corrected.validate()

    def test_corrected_keeps_valid_parameters(self):
        params = NLMParameters(template_window_size=3, search_window_size=9)
        assert params.corrected() is params


class TestNLMDenoisingConfig:
    """Test the combined configuration"""

    def test_defaults(self):
        config = NLMDenoisingConfig()
        assert config.backend == "manual"
        assert config.source.source is None
        assert config.nlm.template_window_size == 3
        assert config.nlm.search_window_size == 7
        assert config.visualization.exit_key == 'x'

    def test_backend_is_case_insensitive(self):
        assert NLMDenoisingConfig(backend="OpenCV").backend == "opencv"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            NLMDenoisingConfig(backend="cuda")


class TestTrackbarState:
    """Test the trackbar context object"""

    def test_round_trip_from_parameters(self):
        params = NLMParameters(template_window_size=5, search_window_size=11, h=4.0, h_color=12.0)
        state = TrackbarState.from_parameters(params)
        assert state.to_parameters() == params

    def test_zero_positions_are_clamped(self):
        state = TrackbarState()
        state.set('template_window_size', 0)
        state.set('h', 0)
        state.set('h_color', 0)
        params = state.to_parameters()
        assert params.template_window_size == 1
        assert params.h == 1.0
        assert params.h_color == 1.0

    def test_sigma_passed_through(self):
        assert TrackbarState().to_parameters(sigma=2.5).sigma == 2.5

    def test_update_from_stores_widened_search(self):
        state = TrackbarState(template_window_size=5, search_window_size=3)
        assert state.update_from(NLMParameters(template_window_size=5, search_window_size=6))
        assert state.search_window_size == 6
        assert not state.update_from(NLMParameters(template_window_size=5, search_window_size=6))
