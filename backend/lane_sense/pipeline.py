"""Periodic lane inference loop.

Each tick runs, strictly in order:

    working canvas + letterbox + tensor   (hand-off to the image thread)
    segmentation inference
    head selection, decode, crop, upsample
    parabola scan
    overlay drawing                        (hand-off, only when enabled)
    publication to the LaneContextStore and the latest TickReport

Image preparation and overlay drawing go through a dedicated single-thread
executor and the tick waits on their futures.  Numeric work stays on the tick
thread.

At most one tick runs at a time.  A tick that fires while the previous one is
still in flight is dropped, not queued.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from PIL import Image

from .camera import FrameSource
from .config import Settings
from .context_store import LaneContextStore
from .errors import LanePipelineError
from .geometry import Letterboxed, fit_to_canvas, letterbox, to_input_tensor
from .inference import SegmentationModel
from .overlay import encode_jpeg, render_overlay
from .scanner import DEFAULT_PARAMS, LaneScanResult, ScanParams, parabola_lane_count
from .segmentation_mask import make_masks, pick_seg_heads

logger = logging.getLogger(__name__)

# The scan is always anchored at the mask centre column
EGO_X_UNSET = -1


@dataclass(frozen=True)
class TickReport:
    """Everything a display needs from one published tick."""

    scan: LaneScanResult
    timings: dict[str, float]  # milliseconds per stage
    published_at: float        # time.monotonic()
    overlay_jpeg: Optional[bytes] = field(default=None, repr=False)

    @property
    def lane_report(self) -> str:
        return f"Ego lane: {self.scan.ego_lane}\nTotal lanes: {self.scan.total_lanes}"

    @property
    def timing_report(self) -> str:
        t = self.timings
        return (
            f"Round trip: {t['total']:.1f} ms\n"
            f"  • preproc:   {t['preproc']:.1f} ms\n"
            f"  • inference: {t['inference']:.1f} ms\n"
            f"  • postproc:  {t['postproc']:.1f} ms"
        )


class _TickCancelled(Exception):
    pass


class LanePipeline:
    def __init__(
        self,
        frame_source: FrameSource,
        model: SegmentationModel,
        store: LaneContextStore,
        settings: Optional[Settings] = None,
        on_overlay: Optional[Callable[[bytes], None]] = None,
        scan_params: ScanParams = DEFAULT_PARAMS,
    ) -> None:
        settings = settings or Settings()
        self.frame_source = frame_source
        self.model = model
        self.store = store
        self.canvas = settings.canvas
        self.tick_interval = settings.tick_interval
        self.start_delay = settings.start_delay
        self.overlay_enabled = settings.overlay_enabled
        self.on_overlay = on_overlay
        self.scan_params = scan_params

        self._image_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lane-image")
        self._tick_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lane-tick")
        self._guard = threading.Lock()
        self._stop = threading.Event()
        self._scheduler: Optional[threading.Thread] = None

        self._state_lock = threading.Lock()
        # held by stop() and by publication, so nothing publishes once stopped
        self._publish_lock = threading.Lock()
        self._latest: Optional[TickReport] = None
        self._stats = {"fired": 0, "published": 0, "skipped": 0, "dropped": 0, "failed": 0}

    # ── Lifecycle ───────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._scheduler is not None and not self._stop.is_set()

    def start(self) -> None:
        if self._stop.is_set():
            raise RuntimeError("LanePipeline cannot be restarted after stop()")
        if self._scheduler is not None:
            return
        self._scheduler = threading.Thread(target=self._schedule, name="lane-scheduler", daemon=True)
        self._scheduler.start()
        logger.info("Lane pipeline started (every %.0f ms)", self.tick_interval * 1000)

    def stop(self) -> None:
        """Stop ticking, cancel pending hand-offs and drop any in-flight result."""
        with self._publish_lock:
            if self._stop.is_set():
                return
            self._stop.set()
        if self._scheduler is not None:
            self._scheduler.join()
        # Cancel queued hand-offs first so a waiting tick unblocks, then let
        # the tick already running finish (its result is discarded).
        self._image_executor.shutdown(wait=False, cancel_futures=True)
        self._tick_executor.shutdown(wait=True, cancel_futures=True)
        logger.info("Lane pipeline stopped")

    def __enter__(self) -> "LanePipeline":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    # ── Published state ─────────────────────────────────────────────────────

    def latest_report(self) -> Optional[TickReport]:
        with self._state_lock:
            return self._latest

    def stats(self) -> dict[str, int]:
        with self._state_lock:
            return dict(self._stats)

    def _count(self, key: str) -> None:
        with self._state_lock:
            self._stats[key] += 1

    # ── Ticking ─────────────────────────────────────────────────────────────

    def _schedule(self) -> None:
        if self._stop.wait(self.start_delay):
            return
        while True:
            self._fire()
            if self._stop.wait(self.tick_interval):
                break

    def _fire(self) -> None:
        self._count("fired")
        if not self._guard.acquire(blocking=False):
            logger.debug("Previous lane tick still running, dropping this one")
            self._count("dropped")
            return
        try:
            self._tick_executor.submit(self._guarded_tick)
        except RuntimeError:
            # executor already shut down
            self._guard.release()

    def _guarded_tick(self) -> None:
        try:
            self._run_tick()
        finally:
            self._guard.release()

    def tick(self) -> Optional[TickReport]:
        """Run one tick on the calling thread.

        Returns the published report, or None when the tick was skipped,
        failed, dropped because another tick is running, or discarded by
        ``stop()``.
        """
        if not self._guard.acquire(blocking=False):
            self._count("dropped")
            return None
        try:
            return self._run_tick()
        finally:
            self._guard.release()

    def _handoff(self, fn, *args):
        if self._stop.is_set():
            raise _TickCancelled()
        try:
            future = self._image_executor.submit(fn, *args)
        except RuntimeError as e:
            raise _TickCancelled() from e
        try:
            return future.result()
        except CancelledError as e:
            raise _TickCancelled() from e

    def _prepare(self, frame, input_size: tuple[int, int]) -> tuple[Image.Image, Letterboxed, object]:
        working = fit_to_canvas(frame, self.canvas)
        lb = letterbox(working, input_size)
        return working, lb, to_input_tensor(lb.image)

    def _draw(self, working: Image.Image, da_mask, ll_mask, scan: LaneScanResult) -> bytes:
        return encode_jpeg(render_overlay(working, da_mask, ll_mask, scan))

    def _run_tick(self) -> Optional[TickReport]:
        frame = self.frame_source.latest_frame()
        if frame is None:
            self._count("skipped")
            return None

        draw_overlay = self.overlay_enabled
        t0 = time.perf_counter()
        try:
            working, lb, tensor = self._handoff(self._prepare, frame, self.model.input_size())
            t_pre = time.perf_counter()

            outputs = self.model.predict(tensor)
            t_inf = time.perf_counter()

            da_head, ll_head = pick_seg_heads(outputs)
            da_mask, ll_mask = make_masks(da_head, ll_head, lb.pad_top, lb.pad_bottom)
            scan = parabola_lane_count(
                da_mask, ll_mask, ego_x=EGO_X_UNSET,
                build_path=draw_overlay, params=self.scan_params,
            )
            overlay_jpeg = None
            if draw_overlay:
                overlay_jpeg = self._handoff(self._draw, working, da_mask, ll_mask, scan)
            t_post = time.perf_counter()
        except _TickCancelled:
            logger.debug("Lane tick cancelled by stop()")
            return None
        except LanePipelineError as e:
            logger.warning("Skipping lane tick: %s: %s", type(e).__name__, e)
            self._count("failed")
            return None
        except Exception:
            logger.exception("Unexpected error in lane tick")
            self._count("failed")
            return None

        def ms(a: float, b: float) -> float:
            return (b - a) * 1000.0

        report = TickReport(
            scan=scan,
            timings={
                "preproc": ms(t0, t_pre),
                "inference": ms(t_pre, t_inf),
                "postproc": ms(t_inf, t_post),
                "total": ms(t0, t_post),
            },
            published_at=time.monotonic(),
            overlay_jpeg=overlay_jpeg,
        )
        with self._publish_lock:
            if self._stop.is_set():
                logger.debug("Discarding lane tick finished after stop()")
                return None
            self.store.update(scan.ego_lane, scan.total_lanes)
            with self._state_lock:
                self._latest = report
                self._stats["published"] += 1
        logger.debug("Lane tick: ego=%d total=%d in %.1f ms",
                     scan.ego_lane, scan.total_lanes, report.timings["total"])

        if overlay_jpeg is not None and self.on_overlay is not None:
            try:
                self.on_overlay(overlay_jpeg)
            except Exception:
                logger.exception("Overlay consumer failed")
        return report
