import asyncio
import re
from datetime import datetime

import pytest

from conftest import BackendFactory, FakeClock
from pose_overlay.capture import RecordingSupport
from pose_overlay.config import RecordingLimits
from pose_overlay.recorder import (
    RecorderState,
    RecordingController,
    RecordingSession,
    format_duration,
    format_size_mb,
)

SUPPORTED = RecordingSupport(supported=True, codec="libvpx-vp9", container="webm", ffmpeg="ffmpeg")
MB = 1024 * 1024


class Exports:
    def __init__(self):
        self.items = []

    def __call__(self, filename, data):
        self.items.append((filename, data))
        return filename


def make_controller(limits=None, support=SUPPORTED):
    clock = FakeClock()
    factory = BackendFactory()
    exports = Exports()
    controller = RecordingController(
        limits or RecordingLimits(),
        support,
        factory,
        exports,
        clock=clock,
        now=lambda: datetime(2024, 5, 6, 7, 8, 9),
    )
    return controller, clock, factory, exports


def run(scenario):
    async def wrapper():
        return scenario()

    return asyncio.run(wrapper())


def test_session_keeps_byte_count_in_sync():
    session = RecordingSession(state=RecorderState.RECORDING, started_at_monotonic=0.0)
    for chunk in (b"abc", b"", b"defgh"):
        session.append(chunk)
        assert session.accumulated_bytes == sum(len(c) for c in session.chunks)
    assert session.assemble() == b"abcdefgh"
    session.clear()
    assert session.chunks == [] and session.accumulated_bytes == 0


def test_unsupported_runtime_refuses_to_start():
    unsupported = RecordingSupport(supported=False, reason="no encoder")
    controller, _, factory, _ = make_controller(support=unsupported)

    def scenario():
        return controller.start(object())

    assert run(scenario) is False
    assert controller.state is RecorderState.IDLE
    assert not controller.is_supported
    assert controller.unsupported_reason == "no encoder"
    assert factory.created == []


def test_start_opens_one_second_segments():
    controller, _, factory, _ = make_controller()
    stream = object()

    def scenario():
        assert controller.start(stream) is True
        assert controller.start(stream) is False
        controller.stop()

    run(scenario)
    assert len(factory.created) == 1
    assert factory.last.stream is stream
    assert factory.last.timeslice == 1.0


def test_duration_ceiling_forces_stop():
    controller, clock, factory, _ = make_controller(RecordingLimits(max_duration_seconds=300))

    def scenario():
        controller.start(object())
        clock.advance(299.9)
        controller.check_duration()
        assert controller.is_recording
        clock.advance(0.1)
        controller.check_duration()
        assert controller.state is RecorderState.IDLE
        assert factory.last.stop_calls == 1

    run(scenario)


def test_size_ceiling_forces_stop_after_crossing_segment():
    controller, _, factory, exports = make_controller(RecordingLimits(max_bytes=100))

    def scenario():
        controller.start(object())
        backend = factory.last
        backend.emit(b"a" * 40)
        backend.emit(b"b" * 40)
        assert controller.is_recording
        backend.emit(b"c" * 30)
        assert controller.state is RecorderState.IDLE
        assert controller.accumulated_bytes == 110
        assert backend.stop_calls == 1
        backend.finish()

    run(scenario)
    assert len(exports.items) == 1
    filename, data = exports.items[0]
    assert filename == "pose_recording_20240506_070809.webm"
    assert data == b"a" * 40 + b"b" * 40 + b"c" * 30
    assert controller.accumulated_bytes == 0
    assert controller.session is None


def test_warning_threshold_with_defaults():
    controller, clock, factory, _ = make_controller()

    def scenario():
        controller.start(object())
        assert not controller.is_warning
        clock.advance(239.5)
        assert not controller.is_warning
        clock.advance(0.5)
        assert controller.is_warning
        assert controller.is_recording

    run(scenario)

    controller, _, factory, _ = make_controller()

    def by_size():
        controller.start(object())
        factory.last.emit(bytes(120 * MB - 1))
        assert not controller.is_warning
        factory.last.emit(b"x")
        assert controller.is_warning
        assert controller.is_recording

    run(by_size)


def test_stop_while_idle_is_noop():
    controller, _, factory, exports = make_controller()
    controller.stop()
    controller.stop()
    assert controller.state is RecorderState.IDLE
    assert factory.created == []
    assert exports.items == []


def test_manual_stop_exports_after_backend_flush():
    controller, clock, factory, exports = make_controller()

    def scenario():
        controller.start(object())
        backend = factory.last
        backend.emit(b"one")
        clock.advance(3.2)
        controller.stop()
        controller.stop()
        assert backend.stop_calls == 1
        assert exports.items == []
        # tail segment flushed on close
        backend.emit(b"two")
        backend.finish()

    run(scenario)
    assert exports.items == [("pose_recording_20240506_070809.webm", b"onetwo")]
    assert controller.state is RecorderState.IDLE
    assert controller.accumulated_bytes == 0
    assert controller.elapsed_seconds == 0
    assert controller.last_export == "pose_recording_20240506_070809.webm"


def test_empty_recording_is_not_exported():
    controller, _, factory, exports = make_controller()

    def scenario():
        controller.start(object())
        factory.last.emit(b"")
        controller.stop()
        factory.last.finish()

    run(scenario)
    assert exports.items == []


def test_previous_session_close_does_not_clear_new_session():
    controller, _, factory, exports = make_controller()

    def scenario():
        controller.start(object())
        old = factory.last
        old.emit(b"old")
        controller.stop()
        assert controller.start(object()) is True
        new = factory.last
        new.emit(b"new")
        old.finish()
        assert controller.is_recording
        assert controller.accumulated_bytes == 3
        controller.stop()
        new.finish()

    run(scenario)
    assert [data for _, data in exports.items] == [b"old", b"new"]


def test_backend_closing_on_its_own_returns_to_idle():
    controller, _, factory, exports = make_controller()

    def scenario():
        controller.start(object())
        factory.last.emit(b"partial")
        factory.last.finish()

    run(scenario)
    assert controller.state is RecorderState.IDLE
    assert factory.last.stop_calls == 0
    assert exports.items[0][1] == b"partial"


def test_export_failure_still_resets():
    clock = FakeClock()
    factory = BackendFactory()

    def failing(filename, data):
        raise OSError("disk full")

    controller = RecordingController(RecordingLimits(), SUPPORTED, factory, failing, clock=clock)

    def scenario():
        controller.start(object())
        factory.last.emit(b"data")
        controller.stop()
        factory.last.finish()

    run(scenario)
    assert controller.accumulated_bytes == 0
    assert controller.session is None


def test_timer_task_enforces_duration():
    controller, clock, factory, _ = make_controller(RecordingLimits(max_duration_seconds=2))

    async def scenario():
        controller.start(object())
        clock.advance(5)
        await asyncio.sleep(0.05)
        return controller.state

    assert asyncio.run(scenario()) is RecorderState.IDLE
    assert factory.last.stop_calls == 1


def test_status_snapshot():
    controller, clock, factory, _ = make_controller()

    def scenario():
        controller.start(object())
        factory.last.emit(b"x" * 2048)
        clock.advance(65)
        return controller.status()

    status = run(scenario)
    assert status.is_recording
    assert status.duration_seconds == 65
    assert status.estimated_size_bytes == 2048
    assert not status.is_warning


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "00:00"), (59, "00:59"), (65, "01:05"), (300, "05:00"), (-3, "00:00")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_format_size_mb():
    assert format_size_mb(150 * MB) == "150.0"
    assert format_size_mb(1.25 * MB) == "1.2"
    assert re.fullmatch(r"\d+\.\d", format_size_mb(12345))
