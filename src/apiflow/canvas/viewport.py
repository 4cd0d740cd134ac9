"""
Viewport Model - Scale and pan of the canvas.

All conversions between device (widget pixel) space and canvas space go
through this class:

    canvas = device / scale - pan
    device = (canvas + pan) * scale
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from apiflow.core.config import get_config
from apiflow.core.models import Point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewState:
    """Snapshot of the viewport transform."""
    scale: float = 1.0
    pan: Point = field(default_factory=Point)


class Viewport:
    """Owns the canvas scale and pan."""

    def __init__(
        self,
        min_scale: Optional[float] = None,
        max_scale: Optional[float] = None,
        wheel_sensitivity: Optional[float] = None,
    ):
        canvas_config = get_config().canvas
        self._min_scale = min_scale if min_scale is not None else canvas_config.min_scale
        self._max_scale = max_scale if max_scale is not None else canvas_config.max_scale
        self._wheel_sensitivity = (
            wheel_sensitivity if wheel_sensitivity is not None
            else canvas_config.wheel_zoom_sensitivity
        )
        self._scale = 1.0
        self._pan = Point()
        self._change_callbacks: List[Callable[[ViewState], None]] = []

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def pan_offset(self) -> Point:
        return self._pan

    @property
    def min_scale(self) -> float:
        return self._min_scale

    @property
    def max_scale(self) -> float:
        return self._max_scale

    @property
    def view_state(self) -> ViewState:
        return ViewState(scale=self._scale, pan=self._pan)

    def on_change(self, callback: Callable[[ViewState], None]) -> None:
        """Register a callback for scale or pan changes."""
        self._change_callbacks.append(callback)

    def _notify_change(self) -> None:
        state = self.view_state
        for callback in self._change_callbacks:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Viewport callback error: {e}")

    def clamp_scale(self, scale: float) -> float:
        return min(max(self._min_scale, scale), self._max_scale)

    def to_canvas(self, device_point: Point) -> Point:
        return Point(
            device_point.x / self._scale - self._pan.x,
            device_point.y / self._scale - self._pan.y,
        )

    def to_device(self, canvas_point: Point) -> Point:
        return Point(
            (canvas_point.x + self._pan.x) * self._scale,
            (canvas_point.y + self._pan.y) * self._scale,
        )

    def zoom_at(self, device_point: Point, delta_scale: float) -> None:
        """
        Change the scale by ``delta_scale`` around a device point.

        The canvas point under ``device_point`` stays under it.
        """
        new_scale = self.clamp_scale(self._scale + delta_scale)
        if new_scale == self._scale:
            return

        anchor = self.to_canvas(device_point)
        self._scale = new_scale
        self._pan = Point(
            device_point.x / new_scale - anchor.x,
            device_point.y / new_scale - anchor.y,
        )
        self._notify_change()

    def zoom_by_wheel(self, device_point: Point, wheel_delta: float) -> None:
        """Zoom for a wheel event; positive deltas (scrolling down) zoom out."""
        self.zoom_at(device_point, -wheel_delta * self._wheel_sensitivity)

    def pan(self, delta_device: Point) -> None:
        """Pan by a device-space delta, so the speed is the same at any scale."""
        if delta_device.x == 0 and delta_device.y == 0:
            return
        self._pan = Point(
            self._pan.x + delta_device.x / self._scale,
            self._pan.y + delta_device.y / self._scale,
        )
        self._notify_change()

    def set_state(self, scale: float, pan: Point) -> None:
        self._scale = self.clamp_scale(scale)
        self._pan = pan
        self._notify_change()

    def reset(self) -> None:
        """Back to scale 1 with no pan."""
        self.set_state(1.0, Point())

    def center_on(self, canvas_point: Point, device_width: float, device_height: float) -> None:
        """Pan so that ``canvas_point`` sits at the centre of the device area."""
        self._pan = Point(
            device_width / 2 / self._scale - canvas_point.x,
            device_height / 2 / self._scale - canvas_point.y,
        )
        self._notify_change()
