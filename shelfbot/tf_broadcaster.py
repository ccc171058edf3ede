"""Publishes the fixed frames of the racks and the robot's map position."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Any

from shelfbot.geometry import Pose, cvt_g_to_pose, get_g_from_rpy
from shelfbot.planner import PlannerBase

FrameTf = tuple[Pose, str, str]


@dataclass(frozen=True)
class _ShelfDefinition:
    rack: str
    shelf: str
    slot_distances: tuple[float, ...]


_SHELVES = (
    _ShelfDefinition("rack_1", "shelf_1", ()),
    _ShelfDefinition("rack_1", "shelf_2", (0.22, 0.37, 0.90)),
    _ShelfDefinition("rack_1", "shelf_3", (0.22, 0.37, 0.90)),
    _ShelfDefinition("rack_1", "shelf_4", (0.22, 0.37, 0.90)),
)


class TfBroadcaster(PlannerBase):
    """Broadcasts static slot frames and periodically re-sends buffered frames."""

    PUBLISH_PERIOD = 0.02

    def __init__(self, node_name: str = "tf_broadcaster", **options: Any):
        super().__init__(node_name, **options)
        self._tf_lock = threading.Lock()
        self._tf_buf: list[FrameTf] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self.push_tf_buf(
            (
                cvt_g_to_pose(get_g_from_rpy(0.9, 1.4, 0, 0, 0, math.pi / 2)),
                self.MAP_FRAME,
                self.BASE_FOOTPRINT,
            )
        )
        self.setup_static_tf()
        self.logger.info("TF Broadcaster is up.")

    @property
    def tf_buf(self) -> list[FrameTf]:
        with self._tf_lock:
            return list(self._tf_buf)

    def setup_static_tf(self) -> None:
        """Send a static frame for every slot of every known shelf."""
        for shelf in _SHELVES:
            base_frame = f"{shelf.rack}_{shelf.shelf}_flat_link"
            for slot, distance in enumerate(shelf.slot_distances, start=1):
                target_frame = f"{shelf.rack}_{shelf.shelf}_slot_{slot}_link"
                pose = cvt_g_to_pose(
                    get_g_from_rpy(distance, 0, 0, 0, -math.pi / 2, -math.pi / 2)
                )
                self.push_static_tf((pose, base_frame, target_frame))

    def push_static_tf(self, tf: FrameTf) -> None:
        with self._tf_lock:
            self.send_static_transform(*tf)

    def push_tf_buf(self, tf: FrameTf) -> None:
        with self._tf_lock:
            self._tf_buf.append(tf)

    def clear_tf_buf(self) -> None:
        with self._tf_lock:
            self._tf_buf.clear()

    def tf_pub_cb(self) -> None:
        """Send every buffered frame once."""
        with self._tf_lock:
            for tf in self._tf_buf:
                self.send_transform(*tf)

    def start(self, period: float | None = None) -> None:
        """Publish the buffered frames periodically in a background thread."""
        if self._thread is not None:
            return
        interval = self.PUBLISH_PERIOD if period is None else period
        self._stop.clear()

        def loop() -> None:
            while not self._stop.wait(interval):
                self.tf_pub_cb()

        self._thread = threading.Thread(target=loop, name="tf-publisher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join()
        self._thread = None

    def __enter__(self) -> TfBroadcaster:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()