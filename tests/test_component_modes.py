from drivebase_control.component_modes import ComponentMode, parse_component_flags


def test_defaults_enable_everything():
    mode, remaining = parse_component_flags([])
    assert mode == ComponentMode()
    assert remaining == []
    assert str(mode) == "Odometry+Vision → Ramsete → Wheels(FF+PID)"


def test_flags_disable_components():
    mode, remaining = parse_component_flags(["--no-vision", "--no-pid", "--duration", "5"])
    assert not mode.use_vision
    assert mode.use_ramsete
    assert mode.use_feedforward
    assert not mode.use_pid
    assert remaining == ["--duration", "5"]
    assert str(mode) == "Odometry → Ramsete → Wheels(FF)"


def test_all_disabled():
    mode, _ = parse_component_flags(["--no-vision", "--no-ramsete", "--no-feedforward", "--no-pid"])
    assert str(mode) == "Odometry → Reference Tracking → Wheels(Off)"
    assert mode.to_dict() == {
        "use_vision": False,
        "use_ramsete": False,
        "use_feedforward": False,
        "use_pid": False,
    }
