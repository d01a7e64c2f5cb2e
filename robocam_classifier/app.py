"""
Coordination loop for live classification and the catalog benchmark.

One coordination thread drains an event queue and owns all mutable state
(classifier handle, frame scheduler, benchmark state, live smoothing). Frame
conversion and inference run on a single background worker whose results are
posted back as events. Model swaps always go stop stream -> wait for the
in-flight frame -> load -> restart stream.
"""
import logging
import os
import queue
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any

from . import benchmark
from .benchmark import BenchmarkConfig, BenchmarkState, Phase
from .color_convert import convert_yuv420_to_rgb
from .frame_scheduler import FrameScheduler, FrameTicket
from .frames import CameraImage, RawFrame
from .live_stats import LiveStats

logger = logging.getLogger(__name__)


# Events handled on the coordination thread

@dataclass(frozen=True)
class FrameArrived:
    image: CameraImage
    session: int


@dataclass(frozen=True)
class FrameProcessed:
    ticket: FrameTicket
    future: Any


@dataclass(frozen=True)
class SelectModel:
    model_id: str


@dataclass(frozen=True)
class SetUseGpu:
    use_gpu: bool


@dataclass(frozen=True)
class StartBenchmark:
    pass


@dataclass(frozen=True)
class Shutdown:
    pass


class ResultSurface:
    """Receiver of everything the presentation layer shows"""

    def on_live_result(self, update):
        pass

    def on_benchmark_progress(self, progress):
        pass

    def on_benchmark_complete(self, report):
        pass


class ConsoleSurface(ResultSurface):
    def __init__(self, print_every=10):
        self.print_every = print_every
        self._live_count = 0
        self._last_progress = None

    def on_live_result(self, update):
        self._live_count += 1
        if self._live_count % self.print_every == 0:
            print(f"🚀 {update.label} ({update.confidence_text}) | "
                  f"Avg inference: {update.avg_inference_ms:.1f} ms")

    def on_benchmark_progress(self, progress):
        key = (progress.model_index, progress.phase)
        if key == self._last_progress:
            return
        self._last_progress = key
        name = os.path.basename(progress.model_id or '')
        phase = "Warming up" if progress.phase is Phase.WARMUP else "Measuring"
        print(f"⏱️  Benchmarking model {progress.model_index + 1} / {progress.total_models}: "
              f"{name} - {phase}...")

    def on_benchmark_complete(self, report):
        self._last_progress = None
        benchmark.print_report(report)


def classify_frame(classifier, frame):
    """Background task: YUV -> RGB conversion and one prediction"""
    image = convert_yuv420_to_rgb(frame)
    return classifier.predict(image)


class ClassifierApp:
    def __init__(self, config, camera, classifier, surface=None, executor=None,
                 clock=time.monotonic, exit_after_benchmark=False):
        self.config = config
        self.camera = camera
        self.classifier = classifier
        self.surface = surface or ResultSurface()
        self.exit_after_benchmark = exit_after_benchmark

        self.events = queue.Queue()
        self.scheduler = FrameScheduler(config.frame_decimation)
        self.live_stats = LiveStats(config.smoothing)
        self.benchmark_state = BenchmarkState()
        self.benchmark_config = BenchmarkConfig(
            warmup_seconds=config.warmup_seconds,
            measure_seconds=config.measure_seconds,
        )
        self.selected_model = config.selected_model
        self.use_gpu = config.use_gpu
        self.last_report = None

        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        self._pending = None
        self._session = 0
        self._streaming = False
        self._camera_ready = False
        self._running = False
        self._closed = False

        self._handlers = {
            FrameArrived: self._handle_frame,
            FrameProcessed: self._handle_processed,
            SelectModel: self._handle_select_model,
            SetUseGpu: self._handle_set_use_gpu,
            StartBenchmark: self._handle_start_benchmark,
            Shutdown: self._handle_shutdown,
        }

    # Thread-safe entry points

    def post(self, event):
        self.events.put(event)

    def select_model(self, model_id):
        self.post(SelectModel(model_id))

    def set_use_gpu(self, use_gpu):
        self.post(SetUseGpu(use_gpu))

    def start_benchmark(self):
        self.post(StartBenchmark())

    def stop(self):
        self.post(Shutdown())

    # Coordination thread

    def initialize(self):
        """Load the selected model, open the camera and start streaming"""
        self.classifier.load_model(self.selected_model, self.use_gpu)
        self.camera.initialize()
        self._camera_ready = True
        self._start_stream()

    def run(self, duration=None):
        """Dispatch events until stopped or until duration seconds have passed"""
        self._running = True
        self.initialize()
        deadline = None if duration is None else self._clock() + duration
        try:
            while self._running:
                timeout = 0.1
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        break
                    timeout = min(timeout, remaining)
                try:
                    event = self.events.get(timeout=timeout)
                except queue.Empty:
                    continue
                self.dispatch(event)
        finally:
            self.close()

    def process_pending(self):
        """Dispatch every queued event without blocking"""
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled
            self.dispatch(event)
            handled += 1

    def dispatch(self, event):
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("Unhandled event: %r", event)
            return
        handler(event)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._running = False
        self._stop_stream()
        self.camera.dispose()
        if self._owns_executor:
            self._executor.shutdown(wait=True)
        self.classifier.release()
        logger.info("Frame stats: %s", self.scheduler.stats())

    # Stream and model control

    def _start_stream(self):
        if not self._camera_ready:
            return
        self._session += 1
        session = self._session
        self.camera.start_image_stream(lambda image: self.post(FrameArrived(image, session)))
        self._streaming = True

    def _stop_stream(self):
        if self._camera_ready:
            self.camera.stop_image_stream()
        self._streaming = False

    def _wait_in_flight(self):
        if self._pending is not None:
            wait([self._pending])

    def _swap_model(self, model_id):
        self._stop_stream()
        self._wait_in_flight()
        self.scheduler.invalidate()
        handle = self.classifier.load_model(model_id, self.use_gpu)
        if handle is None:
            logger.warning("No model loaded for %s, predictions paused", model_id)
        self._start_stream()
        return handle

    # Handlers

    def _handle_frame(self, event):
        if not self._streaming or event.session != self._session:
            return

        ticket = self.scheduler.offer()
        if ticket is None:
            return

        try:
            # Copy out of the camera buffer before handing off
            frame = RawFrame.from_camera_image(event.image)
            future = self._executor.submit(classify_frame, self.classifier, frame)
        except Exception:
            logger.exception("Error handing off frame %d", ticket.frame_number)
            self.scheduler.complete(ticket)
            return

        self._pending = future
        future.add_done_callback(lambda f: self.post(FrameProcessed(ticket, f)))

    def _handle_processed(self, event):
        result = None
        current = False
        try:
            result = event.future.result()
        except Exception:
            logger.exception("Error processing frame %d", event.ticket.frame_number)
        finally:
            current = self.scheduler.complete(event.ticket)
            if self._pending is event.future:
                self._pending = None

        if self._closed or not current or result is None:
            return

        if self.benchmark_state.active:
            self._advance_benchmark(result)
        else:
            self.surface.on_live_result(self.live_stats.update(result))

    def _handle_select_model(self, event):
        if self.benchmark_state.active:
            logger.warning("Model selection ignored while benchmarking")
            return
        self.selected_model = event.model_id
        self.live_stats.reset()
        self._swap_model(event.model_id)

    def _handle_set_use_gpu(self, event):
        if self.benchmark_state.active:
            logger.warning("Accelerator toggle ignored while benchmarking")
            return
        self.use_gpu = event.use_gpu
        self.live_stats.reset()
        self._swap_model(self.selected_model)

    def _handle_start_benchmark(self, event):
        if self.benchmark_state.active:
            logger.warning("Benchmark already running")
            return
        logger.info("Starting benchmark over %d models", len(self.config.catalog))
        self._stop_stream()
        transition = benchmark.start(self.config.catalog, restore_model=self.selected_model)
        self._apply_transition(transition)

    def _handle_shutdown(self, event):
        self._running = False

    # Benchmark

    def _advance_benchmark(self, result):
        transition = benchmark.record_sample(
            self.benchmark_state, result.inference_time_ms, self._clock(), self.benchmark_config
        )
        self._apply_transition(transition)

    def _apply_transition(self, transition):
        previous = self.benchmark_state
        self.benchmark_state = transition.state

        if previous.active and len(transition.state.entries) > len(previous.entries):
            entry = transition.state.entries[-1]
            if entry.failed:
                logger.warning("Benchmark: skipped %s, model not usable", entry.model_id)
            else:
                logger.info("Benchmark: finished %s -> %.2f ms", entry.model_id, entry.mean_ms)
        elif previous.phase is Phase.WARMUP and transition.state.phase is Phase.MEASURING:
            logger.info("Benchmark: finished warmup for %s", transition.state.current_model)

        if transition.load_model is not None:
            handle = self._swap_model(transition.load_model)
            if handle is None or not handle.has_metadata:
                # An unusable model never produces samples
                self._apply_transition(benchmark.skip_model(self.benchmark_state))
                return
            self.benchmark_state = benchmark.model_ready(self.benchmark_state, self._clock())

        if transition.report is not None:
            self._finish_benchmark(transition.report)
        elif self.benchmark_state.active:
            self.surface.on_benchmark_progress(
                benchmark.progress(self.benchmark_state, self._clock())
            )

    def _finish_benchmark(self, report):
        self.last_report = report
        self.surface.on_benchmark_complete(report)

        # Resume live classification on the user's model
        restore = self.benchmark_state.restore_model or self.selected_model
        self.live_stats.reset()
        self._swap_model(restore)

        if self.exit_after_benchmark:
            self._running = False
