"""Tests for the disturbance estimator."""

import logging
import math

import numpy as np
import pytest

from nsf_controller.config import ControlGains, HorizontalGains, MassEstimatorGains
from nsf_controller.controllers import DisturbanceEstimator, SaturationFlags, saturate
from nsf_controller.messages import TransformError
from nsf_controller.utils import ThrottledLogger

GAINS = ControlGains(
    horizontal=HorizontalGains(kiw=1.0, kib=1.0, kiw_lim=0.5, kib_lim=0.3),
    mass_estimator=MassEstimatorGains(km=2.0, km_lim=1.0),
)

NO_SATURATION = SaturationFlags()
LEVEL_FEEDBACK = np.array([0.0, 0.0, 0.5])


@pytest.fixture
def estimator():
    return DisturbanceEstimator(gravity=9.81)


def rotate_quarter_turn(vector, from_frame, to_frame):
    """Transformer rotating vectors by +90 degrees about Z."""
    return np.array([-vector[1], vector[0], vector[2]])


class TestSaturate:
    """Tests for the shared saturation helper."""

    def throttled(self):
        return ThrottledLogger(logging.getLogger("test.saturate"))

    def test_within_bounds(self):
        assert saturate(0.2, -1.0, 1.0, "v", self.throttled()) == (0.2, False)

    def test_clamps_both_sides(self):
        assert saturate(2.0, -1.0, 1.0, "v", self.throttled()) == (1.0, True)
        assert saturate(-2.0, -1.0, 1.0, "v", self.throttled()) == (-1.0, True)

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_becomes_zero(self, value):
        assert saturate(value, -1.0, 1.0, "v", self.throttled()) == (0.0, False)


class TestDisturbanceEstimator:
    """Tests for integral and mass updates."""

    def test_initial_state_zero(self, estimator):
        state = estimator.snapshot()

        assert state.ib_b == (0.0, 0.0)
        assert state.iw_w == (0.0, 0.0)
        assert state.mass_difference == 0.0

    def test_world_and_body_integrate_error(self, estimator):
        state = estimator.update(
            np.array([1.0, -0.5, 0.0]), LEVEL_FEEDBACK, NO_SATURATION, 0.0, 0.1, GAINS
        )

        assert np.allclose(state.iw_w, (0.1, -0.05))
        assert np.allclose(state.ib_b, (0.1, -0.05))

    def test_body_integral_uses_body_frame_error(self, estimator):
        """Test that the error is rotated by +yaw before body integration."""
        state = estimator.update(
            np.array([1.0, 0.0, 0.0]),
            LEVEL_FEEDBACK,
            NO_SATURATION,
            math.pi / 2,
            0.1,
            GAINS,
        )

        assert np.allclose(state.ib_b, (0.0, 0.1))
        assert np.allclose(state.iw_w, (0.1, 0.0))

    def test_integrals_clamped_to_limits(self, estimator):
        for _ in range(100):
            state = estimator.update(
                np.array([1.0, -1.0, 1.0]), LEVEL_FEEDBACK, NO_SATURATION, 0.0, 0.1, GAINS
            )

        assert np.allclose(state.iw_w, (0.5, -0.5))
        assert np.allclose(state.ib_b, (0.3, -0.3))
        assert state.mass_difference == pytest.approx(1.0)

    def test_saturated_axis_same_sign_not_integrated(self, estimator):
        """Test anti-windup when saturated in the direction of the error."""
        state = estimator.update(
            np.array([1.0, 1.0, 0.0]),
            np.array([0.4, 0.0, 0.5]),
            SaturationFlags(x=True),
            0.0,
            0.1,
            GAINS,
        )

        assert state.iw_w[0] == 0.0
        assert state.iw_w[1] == pytest.approx(0.1)
        # the body integral is never gated
        assert state.ib_b[0] == pytest.approx(0.1)

    def test_saturated_axis_opposite_sign_integrated(self, estimator):
        state = estimator.update(
            np.array([1.0, 0.0, 0.0]),
            np.array([-0.4, 0.0, 0.5]),
            SaturationFlags(x=True),
            0.0,
            0.1,
            GAINS,
        )

        assert state.iw_w[0] == pytest.approx(0.1)

    def test_mass_integrates_vertical_error(self, estimator):
        state = estimator.update(
            np.array([0.0, 0.0, 0.5]), LEVEL_FEEDBACK, NO_SATURATION, 0.0, 0.1, GAINS
        )

        assert state.mass_difference == pytest.approx(0.1)

    def test_mass_frozen_while_thrust_saturated(self, estimator):
        state = estimator.update(
            np.array([0.0, 0.0, 0.5]),
            np.array([0.0, 0.0, 0.9]),
            SaturationFlags(z=True),
            0.0,
            0.1,
            GAINS,
        )

        assert state.mass_difference == 0.0

    def test_non_finite_error_resets_to_zero(self, estimator):
        estimator.seed((0.1, 0.1), (0.2, 0.2), 0.5)

        state = estimator.update(
            np.array([math.nan, math.inf, math.nan]),
            LEVEL_FEEDBACK,
            NO_SATURATION,
            0.0,
            0.1,
            GAINS,
        )

        assert state.iw_w == (0.0, 0.0)
        assert state.ib_b == (0.0, 0.0)
        assert state.mass_difference == 0.0

    def test_reset_keeps_mass(self, estimator):
        estimator.seed((0.1, 0.1), (0.2, 0.2), 0.5)

        estimator.reset()
        state = estimator.snapshot()

        assert state.iw_w == (0.0, 0.0)
        assert state.ib_b == (0.0, 0.0)
        assert state.mass_difference == 0.5

    def test_reset_mass_difference(self, estimator):
        estimator.seed((0.1, 0.1), (0.2, 0.2), 0.5)

        estimator.reset_mass_difference()

        assert estimator.mass_difference == 0.0
        assert estimator.snapshot().iw_w == (0.2, 0.2)

    def test_seed_replaces_non_finite(self, estimator):
        estimator.seed((math.nan, 0.1), (0.2, math.inf), math.nan)
        state = estimator.snapshot()

        assert state.ib_b == (0.0, 0.1)
        assert state.iw_w == (0.2, 0.0)
        assert state.mass_difference == 0.0


class TestReprojection:
    """Tests for re-expressing the world integral in a new frame."""

    def test_successful_transform(self, estimator):
        estimator.seed((0.0, 0.0), (0.1, 0.2), 0.0)

        assert estimator.reproject_world_integral(rotate_quarter_turn, "gps", "slam")

        # tilt (0.1, 0.2) -> ENU (0.1, -0.2) -> rotated (0.2, 0.1) -> tilt (0.2, -0.1)
        assert np.allclose(estimator.snapshot().iw_w, (0.2, -0.1))

    def test_update_during_transform_overwritten(self, estimator):
        """Test that the transform runs unlocked and its result replaces Iw_w."""
        estimator.seed((0.0, 0.0), (0.1, 0.2), 0.0)

        def transform_while_updating(vector, from_frame, to_frame):
            estimator.update(
                np.array([1.0, 1.0, 0.0]), LEVEL_FEEDBACK, NO_SATURATION, 0.0, 0.1, GAINS
            )
            return np.array(vector)

        assert estimator.reproject_world_integral(transform_while_updating, "gps", "slam")

        state = estimator.snapshot()
        assert np.allclose(state.iw_w, (0.1, 0.2))
        assert np.allclose(state.ib_b, (0.1, 0.1))

    def test_failed_transform_zeroes_world_integral(self, estimator):
        estimator.seed((0.05, 0.05), (0.1, 0.2), 0.3)

        assert not estimator.reproject_world_integral(
            lambda vector, from_frame, to_frame: None, "gps", "slam"
        )

        state = estimator.snapshot()
        assert state.iw_w == (0.0, 0.0)
        # the body integral and mass estimate are frame independent
        assert state.ib_b == (0.05, 0.05)
        assert state.mass_difference == 0.3

    def test_raising_transform_zeroes_world_integral(self, estimator):
        estimator.seed((0.0, 0.0), (0.1, 0.2), 0.0)

        def failing(vector, from_frame, to_frame):
            raise TransformError("no transform from gps to slam")

        assert not estimator.reproject_world_integral(failing, "gps", "slam")
        assert estimator.snapshot().iw_w == (0.0, 0.0)

    def test_missing_transformer_zeroes_world_integral(self, estimator):
        estimator.seed((0.0, 0.0), (0.1, 0.2), 0.0)

        assert not estimator.reproject_world_integral(None, "gps", "slam")
        assert estimator.snapshot().iw_w == (0.0, 0.0)
