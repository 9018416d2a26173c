import pytest

from drivebase_control.geometry import WheelSpeeds
from drivebase_control.motor_controller import (
    SimpleMotorFeedforward,
    SlewRateLimiter,
    WheelVelocityController,
)


def test_feedforward():
    ff = SimpleMotorFeedforward(ks=0.5, kv=4.0, ka=2.0)
    assert ff.calculate(0.0) == 0.0
    assert ff.calculate(1.0) == pytest.approx(4.5)
    assert ff.calculate(-1.0) == pytest.approx(-4.5)
    assert ff.calculate(1.0, 0.5) == pytest.approx(5.5)
    assert ff.max_achievable_velocity(12.0) == pytest.approx(11.5 / 4.0)


def test_feedforward_rejects_negative_gains():
    with pytest.raises(ValueError):
        SimpleMotorFeedforward(ks=-0.1)
    with pytest.raises(ValueError):
        SimpleMotorFeedforward(ka=-0.1)


@pytest.mark.parametrize("kv", [0.0, -1.0])
def test_feedforward_requires_positive_velocity_gain(kv):
    with pytest.raises(ValueError):
        SimpleMotorFeedforward(kv=kv)


def test_invalid_voltage_limit():
    with pytest.raises(ValueError):
        WheelVelocityController(max_voltage=0.0)


def test_feedforward_only_when_on_target():
    ff = SimpleMotorFeedforward(ks=0.5, kv=4.0, ka=2.0)
    controller = WheelVelocityController(feedforward=ff, k_p=1.0)
    target = WheelSpeeds(1.0, 2.0)
    volts = controller.calculate(target, target, 0.02)
    assert volts.left == pytest.approx(4.5)
    assert volts.right == pytest.approx(8.5)


def test_proportional_feedback():
    controller = WheelVelocityController(k_p=2.0, disable_feedforward=True)
    volts = controller.calculate(WheelSpeeds(1.0, 1.0), WheelSpeeds(0.5, 1.5), 0.02)
    assert volts.left == pytest.approx(1.0)
    assert volts.right == pytest.approx(-1.0)

    diagnostics = controller.get_diagnostics()
    assert diagnostics["ff_left"] == 0.0
    assert diagnostics["fb_left"] == pytest.approx(1.0)


def test_acceleration_feedforward():
    ff = SimpleMotorFeedforward(ks=0.0, kv=1.0, ka=0.5)
    controller = WheelVelocityController(feedforward=ff, disable_feedback=True)
    controller.calculate(WheelSpeeds(1.0, 1.0), WheelSpeeds(), 0.02)
    volts = controller.calculate(WheelSpeeds(1.1, 1.0), WheelSpeeds(), 0.02)
    # 0.1 m/s change over 20 ms is 5 m/s²
    assert volts.left == pytest.approx(1.0 * 1.1 + 0.5 * 5.0)
    assert volts.right == pytest.approx(1.0)


def test_output_clamped():
    controller = WheelVelocityController(max_voltage=12.0)
    volts = controller.calculate(WheelSpeeds(100.0, -100.0), WheelSpeeds(), 0.02)
    assert volts == WheelSpeeds(12.0, -12.0)


def test_integral_anti_windup():
    controller = WheelVelocityController(k_p=0.0, k_i=1.0, integral_limit=0.5, disable_feedforward=True)
    for _ in range(100):
        controller.calculate(WheelSpeeds(10.0, -10.0), WheelSpeeds(), 0.02)
    assert controller.integral_left == pytest.approx(0.5)
    assert controller.integral_right == pytest.approx(-0.5)


def test_reset():
    controller = WheelVelocityController(k_i=1.0)
    controller.calculate(WheelSpeeds(1.0, 1.0), WheelSpeeds(), 0.02)
    controller.reset()
    assert controller.integral_left == 0.0
    assert controller.prev_target is None


def test_slew_rate_limiter():
    limiter = SlewRateLimiter(1.5)
    assert limiter.calculate(1.0, 0.02) == pytest.approx(0.03)
    assert limiter.calculate(1.0, 0.02) == pytest.approx(0.06)
    assert limiter.calculate(0.05, 0.02) == pytest.approx(0.05)
    limiter.reset()
    assert limiter.value == 0.0

    with pytest.raises(ValueError):
        SlewRateLimiter(0.0)
