import numpy as np
import pytest

from conftest import FakeCamera, FakeEngineFactory, InlineExecutor, make_input_spec, make_output_spec
from robocam_classifier.app import ClassifierApp, ResultSurface
from robocam_classifier.classifier import Classifier
from robocam_classifier.config import AppConfig
from robocam_classifier.frames import CameraImage, Plane

CATALOG = ('a.tflite', 'b.tflite')


class RecordingSurface(ResultSurface):
    def __init__(self):
        self.live = []
        self.progress = []
        self.completed = []

    def on_live_result(self, update):
        self.live.append(update)

    def on_benchmark_progress(self, progress):
        self.progress.append(progress)

    def on_benchmark_complete(self, report):
        self.completed.append(report)


class ExplodingClassifier:
    def __init__(self):
        self.handle = None

    def load_model(self, model_id, use_gpu=False):
        return object()

    def predict(self, image):
        raise RuntimeError("boom")

    def release(self):
        pass


class RefusingExecutor:
    def submit(self, fn, *args, **kwargs):
        raise RuntimeError("worker gone")


def camera_image(width=4, height=4):
    return CameraImage(
        planes=(
            Plane(np.full(width * height, 100, dtype=np.uint8), width),
            Plane(np.full((width // 2) * (height // 2), 128, dtype=np.uint8), width // 2),
            Plane(np.full((width // 2) * (height // 2), 128, dtype=np.uint8), width // 2),
        ),
        width=width,
        height=height,
    )


@pytest.fixture
def factory():
    return FakeEngineFactory(make_input_spec(), make_output_spec(), output=[0.0, 5.0, 0.0, 0.0])


@pytest.fixture
def camera():
    return FakeCamera()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def make_app(tmp_path, factory, camera, surface, labels_file, clock):
    def _make(classifier=None, executor=None, **overrides):
        settings = dict(model_dir=tmp_path, catalog=CATALOG, selected_model='b.tflite',
                        warmup_seconds=5.0, measure_seconds=20.0)
        settings.update(overrides)
        config = AppConfig(**settings)
        app = ClassifierApp(
            config,
            camera,
            classifier or Classifier(factory, labels_path=labels_file),
            surface=surface,
            executor=executor or InlineExecutor(),
            clock=clock,
        )
        app.initialize()
        return app
    return _make


def emit_frames(app, camera, count):
    for _ in range(count):
        camera.emit(camera_image())
    app.process_pending()


def test_initialize_loads_selected_model_and_streams(make_app, factory, camera):
    app = make_app()

    assert [e.model_id for e in factory.opened] == ['b.tflite']
    assert camera.calls == ['initialize', 'start']
    assert app.classifier.handle.model_id == 'b.tflite'


def test_one_in_three_frames_classified(make_app, camera, surface):
    app = make_app()

    emit_frames(app, camera, 9)

    assert len(surface.live) == 3
    assert app.scheduler.stats()['admitted'] == 3
    assert surface.live[0].label == 'dog'
    assert surface.live[0].confidence_text == '98.0%'


def test_stale_result_discarded_after_model_swap(make_app, camera, surface, factory):
    app = make_app()

    for _ in range(3):
        camera.emit(camera_image())
    # The swap is queued ahead of the frame's result
    app.select_model('a.tflite')
    app.process_pending()

    assert surface.live == []
    assert not app.scheduler.in_flight
    assert app.selected_model == 'a.tflite'
    assert [e.model_id for e in factory.opened] == ['b.tflite', 'a.tflite']

    emit_frames(app, camera, 3)
    assert len(surface.live) == 1


def test_select_model_stops_stream_before_loading(make_app, camera, factory):
    app = make_app()

    app.select_model('a.tflite')
    app.process_pending()

    assert camera.calls == ['initialize', 'start', 'stop', 'start']
    assert factory.opened[0].closed
    assert app.classifier.handle.model_id == 'a.tflite'


def test_gpu_toggle_reloads_current_model(make_app, factory):
    app = make_app()

    app.set_use_gpu(True)
    app.process_pending()

    assert app.use_gpu
    assert app.classifier.handle.using_accelerator
    assert app.classifier.handle.model_id == 'b.tflite'


def test_frames_from_old_stream_session_ignored(make_app, camera, surface):
    app = make_app()
    old_callback = camera.callback

    app.select_model('a.tflite')
    app.process_pending()
    for _ in range(3):
        old_callback(camera_image())
    app.process_pending()

    assert surface.live == []
    assert app.scheduler.delivered == 0


def test_full_benchmark_restores_selected_model(make_app, camera, surface, factory, clock):
    app = make_app()

    app.start_benchmark()
    app.process_pending()
    assert app.benchmark_state.active
    assert app.classifier.handle.model_id == 'a.tflite'

    for _ in range(200):
        if app.last_report is not None:
            break
        clock.advance(1.0)
        emit_frames(app, camera, 3)

    report = app.last_report
    assert report is not None
    assert [entry.model_id for entry in report.entries] == ['a.tflite', 'b.tflite']
    assert all(entry.sample_count > 0 for entry in report.entries)
    assert surface.completed == [report]
    assert surface.live == []
    assert surface.progress

    assert not app.benchmark_state.active
    assert app.selected_model == 'b.tflite'
    assert app.classifier.handle.model_id == 'b.tflite'
    assert [e.model_id for e in factory.opened] == ['b.tflite', 'a.tflite', 'b.tflite', 'b.tflite']

    # Live classification resumes
    emit_frames(app, camera, 3)
    assert len(surface.live) == 1


def run_benchmark_to_report(app, camera, clock, limit=200):
    app.start_benchmark()
    app.process_pending()
    for _ in range(limit):
        if app.last_report is not None:
            break
        clock.advance(1.0)
        emit_frames(app, camera, 3)
    return app.last_report


def test_benchmark_skips_model_that_fails_to_load(make_app, camera, surface, labels_file, clock):
    factory = FakeEngineFactory(make_input_spec(), make_output_spec(), fail_models={'a.tflite'})
    app = make_app(classifier=Classifier(factory, labels_path=labels_file))

    report = run_benchmark_to_report(app, camera, clock)

    assert report is not None
    failed, measured = report.entries
    assert (failed.model_id, failed.failed, failed.sample_count) == ('a.tflite', True, 0)
    assert measured.model_id == 'b.tflite'
    assert measured.sample_count > 0
    assert [entry.model_id for entry in report.ranked()] == ['b.tflite', 'a.tflite']
    assert app.classifier.handle.model_id == 'b.tflite'
    assert surface.completed == [report]


def test_benchmark_finishes_when_no_model_has_metadata(make_app, camera, labels_file, clock):
    factory = FakeEngineFactory(make_input_spec(), make_output_spec(), fail_metadata=True)
    app = make_app(classifier=Classifier(factory, labels_path=labels_file))

    report = run_benchmark_to_report(app, camera, clock, limit=1)

    assert report is not None
    assert [entry.failed for entry in report.entries] == [True, True]
    assert not app.benchmark_state.active


def test_model_selection_ignored_during_benchmark(make_app, factory):
    app = make_app()
    app.start_benchmark()
    app.process_pending()
    opened = len(factory.opened)

    app.select_model('a.tflite')
    app.set_use_gpu(True)
    app.process_pending()

    assert app.selected_model == 'b.tflite'
    assert not app.use_gpu
    assert len(factory.opened) == opened


def test_worker_exception_frees_in_flight_slot(make_app, camera):
    app = make_app(classifier=ExplodingClassifier())

    emit_frames(app, camera, 6)

    assert not app.scheduler.in_flight
    assert app.scheduler.admitted == 2


def test_hand_off_failure_frees_in_flight_slot(make_app, camera, surface):
    app = make_app(executor=RefusingExecutor())

    emit_frames(app, camera, 6)

    assert not app.scheduler.in_flight
    assert app.scheduler.admitted == 2
    assert surface.live == []


def test_shutdown_event_stops_loop(make_app):
    app = make_app()
    app._running = True

    app.stop()
    app.process_pending()

    assert not app._running


def test_close_releases_camera_and_model(make_app, camera, factory):
    app = make_app()

    app.close()
    app.close()

    assert camera.disposed
    assert camera.calls.count('stop') == 1
    assert factory.opened[0].closed
    assert app.classifier.handle is None
