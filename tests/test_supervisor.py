"""Tests for aggregation, reporting and command gating in the supervisor."""

import time

import pytest

from core.comms import MessageBus
from core.control import VelocityCommand
from core.parameters import ChannelConfig, ConfigError, WatchdogConfig
from core.sensors import FeedManager
from modules.safety.supervisor import HealthReport, Supervisor


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def channel(name, min_freq=8.0, **kwargs):
    return ChannelConfig(name=name, channel=f"/{name}", min_frequency=min_freq, **kwargs)


def make_supervisor(names=("lidar", "imu", "gps", "camera"), clock=None, rate=10.0):
    bus = MessageBus(clock=clock) if clock is not None else MessageBus()
    cfg = WatchdogConfig(rate=rate, channels=tuple(channel(n) for n in names))
    sup = Supervisor(bus, cfg)
    sup.initialize(start_monitors=False)
    return sup


def make_healthy(monitor):
    for t in (0.0, 0.1, 0.2):
        monitor.record_arrival(t)
    assert monitor.evaluate() is True


def capture(bus, topic):
    received = []
    bus.subscribe(topic, lambda msg, ts: received.append(msg))
    return received


def wait_for(predicate, timeout_s=3.0):
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_all_healthy_gives_healthy_system():
    sup = make_supervisor()
    for m in sup.monitors:
        make_healthy(m)
    report = sup.tick()
    assert report.healthy is True
    assert report.as_dict() == {"lidar": True, "imu": True, "gps": True, "camera": True}


def test_one_stale_channel_makes_system_unhealthy():
    sup = make_supervisor()
    for m in sup.monitors[:3]:
        make_healthy(m)
    report = sup.tick()
    assert report.healthy is False
    assert report.stale_channels() == ["camera"]
    assert sup.last_report is report


def test_tick_publishes_status_and_info():
    sup = make_supervisor(names=("lidar",))
    status = capture(sup.bus, "status")
    info = capture(sup.bus, "info")
    make_healthy(sup.monitors[0])
    sup.tick()
    assert status == [True]
    assert isinstance(info[0], HealthReport)
    assert info[0].as_dict() == {"lidar": True}
    assert info[0].stamp > 0


def test_report_preserves_configured_order():
    sup = make_supervisor(names=("b", "a", "c"))
    report = sup.tick()
    assert [c.name for c in report.channels] == ["b", "a", "c"]
    assert sup.channel_count == 3


def test_commands_are_zeroed_before_first_tick():
    sup = make_supervisor(names=("lidar",))
    out = capture(sup.bus, "cmd_vel_out")
    cmd = VelocityCommand(linear_x=1.5, angular_z=0.3)
    assert sup.on_command(cmd) == VelocityCommand.neutral()
    assert out == [VelocityCommand.neutral()]


def test_healthy_system_passes_command_unchanged():
    sup = make_supervisor(names=("lidar",))
    out = capture(sup.bus, "cmd_vel_out")
    make_healthy(sup.monitors[0])
    sup.tick()
    cmd = VelocityCommand(linear_x=1.5, angular_z=0.3)
    assert sup.on_command(cmd) is cmd
    assert out == [cmd]


def test_unhealthy_system_zeroes_any_command():
    sup = make_supervisor(names=("lidar", "imu"))
    make_healthy(sup.monitors[0])
    sup.tick()
    for cmd in (VelocityCommand(linear_x=2.0), VelocityCommand(angular_z=-1.0), VelocityCommand()):
        assert sup.on_command(cmd).is_neutral()


def test_gate_follows_latest_tick():
    sup = make_supervisor(names=("lidar",))
    monitor = sup.monitors[0]
    make_healthy(monitor)
    sup.tick()
    assert sup.gate.is_open()
    # no new arrivals: the next evaluation only has the seed
    monitor.evaluate()
    # gate still reflects the previous tick until the supervisor runs again
    assert sup.gate.is_open()
    sup.tick()
    assert not sup.gate.is_open()


def test_arrivals_flow_from_bus_to_monitor():
    clock = FakeClock()
    sup = make_supervisor(names=("lidar",), clock=clock)
    lidar = sup.monitors[0]
    for t in (0.00, 0.05, 0.11, 0.30):
        clock.t = t
        sup.bus.publish("/lidar", {"payload": "ignored"})
    assert lidar.samples() == [0.00, 0.05, 0.11, 0.30]
    clock.t = 0.32
    assert lidar.evaluate() is False
    assert sup.tick().healthy is False


def test_failed_monitor_is_reported_stale():
    sup = make_supervisor(names=("lidar", "imu"))
    for m in sup.monitors:
        make_healthy(m)
    imu = sup.monitors[1]

    def boom(stamps):
        raise RuntimeError("boom")

    imu._check = boom
    imu.start()
    try:
        assert wait_for(lambda: imu.failed)
    finally:
        imu.stop()
    # the verdict from before the crash is ignored
    assert imu.status() is True
    report = sup.tick()
    assert report.as_dict() == {"lidar": True, "imu": False}
    assert report.healthy is False


def test_initialize_rejects_empty_channel_set():
    bus = MessageBus()
    cfg = WatchdogConfig(rate=10.0, channels=(channel("lidar"),))
    sup = Supervisor(bus, cfg)
    with pytest.raises(ConfigError):
        sup.initialize(channels=[])
    assert sup.channel_count == 0


def test_initialize_rejects_duplicate_names():
    bus = MessageBus()
    cfg = WatchdogConfig(rate=10.0, channels=(channel("lidar"),))
    sup = Supervisor(bus, cfg)
    with pytest.raises(ConfigError):
        sup.initialize(channels=[channel("lidar"), channel("lidar")])
    assert bus.subscriber_count("/lidar") == 0


def test_initialize_twice_is_an_error():
    sup = make_supervisor(names=("lidar",))
    with pytest.raises(RuntimeError):
        sup.initialize()


def test_empty_monitor_set_is_vacuously_healthy():
    bus = MessageBus()
    cfg = WatchdogConfig(rate=10.0, channels=(channel("lidar"),))
    sup = Supervisor(bus, cfg)
    # never initialized: no monitors
    assert sup.tick().healthy is True


def test_started_supervisor_zeroes_commands_without_data():
    sup = make_supervisor(names=("lidar",), rate=50.0)
    out = capture(sup.bus, "cmd_vel_out")
    sup.start()
    try:
        assert wait_for(lambda: sup.last_report is not None)
        sup.bus.publish("cmd_vel_in", VelocityCommand(linear_x=1.0))
    finally:
        sup.stop()
    assert out == [VelocityCommand.neutral()]
    assert sup.bus.subscriber_count("cmd_vel_in") == 0
    assert all(not m.running for m in sup.monitors)


def test_live_feeds_open_and_close_the_gate():
    bus = MessageBus()
    cfg = WatchdogConfig(rate=50.0, channels=(channel("lidar", min_freq=20.0, monitoring_rate=50.0),
                                              channel("imu", min_freq=20.0, monitoring_rate=50.0)))
    sup = Supervisor(bus, cfg)
    feeds = FeedManager(bus, seed=1)
    feeds.add_feed("/lidar", 200.0)
    feeds.add_feed("/imu", 200.0)
    sup.initialize()
    feeds.start()
    sup.start()
    try:
        assert wait_for(lambda: sup.last_report is not None and sup.last_report.healthy)
        assert sup.on_command(VelocityCommand(linear_x=1.0)) == VelocityCommand(linear_x=1.0)

        feeds.pause("/imu")
        assert wait_for(lambda: not sup.gate.is_open())
        assert sup.last_report.as_dict()["imu"] is False
        assert sup.on_command(VelocityCommand(linear_x=1.0)).is_neutral()

        feeds.resume("/imu")
        assert wait_for(lambda: sup.gate.is_open())
    finally:
        feeds.stop()
        sup.stop()


def test_run_returns_after_duration():
    sup = make_supervisor(names=("lidar",), rate=50.0)
    start = time.monotonic()
    sup.run(duration_s=0.1)
    assert time.monotonic() - start < 2.0
    assert sup.last_report is not None
    assert not sup.monitors[0].running


def test_restart_resubscribes_channels():
    clock = FakeClock()
    sup = make_supervisor(names=("lidar",), clock=clock, rate=50.0)
    sup.start()
    sup.stop()
    assert sup.bus.subscriber_count("/lidar") == 0
    sup.start()
    try:
        assert sup.bus.subscriber_count("/lidar") == 1
        assert sup.bus.subscriber_count("cmd_vel_in") == 1
        clock.t = 42.0
        sup.bus.publish("/lidar", {})
        assert 42.0 in sup.monitors[0].samples()
    finally:
        sup.stop()


def test_second_start_does_not_duplicate_subscriptions():
    sup = make_supervisor(names=("lidar",), rate=50.0)
    sup.start()
    try:
        sup.start()
        assert sup.bus.subscriber_count("/lidar") == 1
        assert sup.bus.subscriber_count("cmd_vel_in") == 1
    finally:
        sup.stop()
