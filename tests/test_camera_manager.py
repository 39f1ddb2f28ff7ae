import pytest

from core.vision.camera_manager import CameraError, CameraManager, CameraSettings


class FakeDevice:
    def __init__(self, frames=("frame-1",)):
        self.frames = list(frames)
        self.released = False

    def isOpened(self):
        return not self.released

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


class FakeOpener:
    def __init__(self, error=None):
        self.error = error
        self.opened = []

    def open(self, index):
        if self.error is not None:
            raise self.error
        device = FakeDevice()
        self.opened.append((index, device))
        return device


def test_acquire_read_release():
    opener = FakeOpener()
    camera = CameraManager(CameraSettings(index=2, warmup_frames=0), opener)

    camera.acquire()
    camera.acquire()

    assert len(opener.opened) == 1
    assert opener.opened[0][0] == 2
    assert camera.read_frame() == "frame-1"
    with pytest.raises(CameraError):
        camera.read_frame()

    camera.release()
    assert opener.opened[0][1].released
    assert not camera.is_open


def test_read_before_acquire_fails():
    with pytest.raises(CameraError):
        CameraManager(CameraSettings(), FakeOpener()).read_frame()


def test_open_failures_become_camera_errors():
    camera = CameraManager(CameraSettings(), FakeOpener(error=OSError("no such device")))

    with pytest.raises(CameraError) as excinfo:
        camera.acquire()

    assert "no such device" in str(excinfo.value)
