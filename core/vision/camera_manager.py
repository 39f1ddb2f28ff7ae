"""Camera handle used by the capture loop: acquire, read frames, release."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import cv2

import config

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
    """Raised when the camera cannot be opened or read."""


class CaptureDevice(Protocol):
    def isOpened(self) -> bool: ...

    def read(self) -> Any: ...

    def release(self) -> None: ...


class DeviceOpener(Protocol):
    def open(self, index: int) -> CaptureDevice:
        ...


class OpenCVDeviceOpener:
    """Opens real devices through cv2.VideoCapture."""

    def open(self, index: int) -> CaptureDevice:
        device = cv2.VideoCapture(index)
        if not device or not device.isOpened():
            raise CameraError(f"Cannot open camera index {index}")
        return device


@dataclass
class CameraSettings:
    index: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    warmup_frames: int = 3
    buffer_size: Optional[int] = 2

    @classmethod
    def from_config(cls) -> "CameraSettings":
        return cls(
            index=config.CAMERA_INDEX,
            width=config.CAMERA_WIDTH,
            height=config.CAMERA_HEIGHT,
            warmup_frames=config.CAMERA_WARMUP_FRAMES,
            buffer_size=config.CAMERA_BUFFER_SIZE,
        )


class CameraManager:
    """Owns one capture device for the lifetime of a capture run."""

    def __init__(self, settings: Optional[CameraSettings] = None, opener: Optional[DeviceOpener] = None):
        self.settings = settings or CameraSettings.from_config()
        self.opener = opener or OpenCVDeviceOpener()
        self._device: Optional[CaptureDevice] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        device = self._device
        return device is not None and device.isOpened()

    def acquire(self) -> None:
        """Open the device; idempotent while it stays open."""
        with self._lock:
            if self._device is not None and self._device.isOpened():
                return
            try:
                device = self.opener.open(self.settings.index)
            except CameraError:
                raise
            except Exception as exc:
                raise CameraError(f"Cannot open camera index {self.settings.index}: {exc}") from exc
            self._configure(device)
            self._device = device

    def _configure(self, device: CaptureDevice) -> None:
        if not hasattr(device, "set"):
            return
        try:
            if self.settings.width:
                device.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
            if self.settings.height:
                device.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
            if self.settings.buffer_size is not None and hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
                device.set(cv2.CAP_PROP_BUFFERSIZE, self.settings.buffer_size)
            logger.info(
                "Camera %s ready: %sx%s",
                self.settings.index,
                int(device.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(device.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            )
            for _ in range(max(0, self.settings.warmup_frames)):
                device.read()
                time.sleep(0.05)
        except cv2.error as exc:
            logger.warning("Unable to configure camera: %s", exc)

    def read_frame(self):
        device = self._device
        if device is None:
            raise CameraError("Camera not acquired")
        ok, frame = device.read()
        if not ok or frame is None:
            raise CameraError("Unable to read frame from camera")
        return frame

    def release(self) -> None:
        with self._lock:
            device, self._device = self._device, None
        if device is not None:
            device.release()
            logger.info("Camera %s released", self.settings.index)
