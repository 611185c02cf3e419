import asyncio
import threading
import time

import numpy as np
import pytest

from pose_overlay import sources
from pose_overlay.sources import CameraSource


class SlowCapture:
    def __init__(self, events, delay):
        self.events = events
        self.delay = delay
        self.released = False
        self.reading = threading.Event()

    def isOpened(self):
        return not self.released

    def set(self, prop, value):
        return True

    def read(self):
        self.events.append("read-start")
        self.reading.set()
        time.sleep(self.delay)
        self.events.append("read-end")
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        self.events.append("release")
        self.released = True


@pytest.fixture
def captures(monkeypatch):
    events = []
    created = []

    def factory(source, delay=0.2):
        cap = SlowCapture(events, delay)
        created.append(cap)
        return cap

    monkeypatch.setattr(sources.cv2, "VideoCapture", factory)
    return events, created


def test_release_waits_for_in_flight_read(captures):
    events, created = captures
    source = CameraSource("0", width=64, height=48)

    async def scenario():
        task = asyncio.create_task(source.run())
        await asyncio.to_thread(created[0].reading.wait, 1.0)
        source.close()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())
    assert events == ["read-start", "read-end", "release"]
    assert created[0].released
    assert not source.is_ready()


def test_close_without_pump_releases_immediately(captures):
    events, created = captures
    source = CameraSource("0", width=64, height=48)
    source.close()
    source.close()
    assert events == ["release"]
    assert source.closed
    assert source.read() is None


def test_pump_publishes_latest_frame(captures):
    _, created = captures
    source = CameraSource("clip.mp4", width=64, height=48)
    created[0].delay = 0.0

    async def scenario():
        task = asyncio.create_task(source.run())
        while source.frame_count == 0:
            await asyncio.sleep(0.01)
        ready = source.is_ready()
        source.close()
        await asyncio.wait_for(task, timeout=1.0)
        return ready

    assert asyncio.run(scenario())
    assert source.current_source_desc == "video_source(clip.mp4)"
    assert created[0].released


def test_reopen_after_close_does_not_keep_capture(captures):
    events, created = captures
    source = CameraSource("0", width=64, height=48)
    source.close()
    source._open_capture()
    assert len(created) == 2
    assert created[1].released
    assert source._capture is None
