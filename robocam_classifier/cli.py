"""
Command line entry point.

Example usage:
  robocam-classifier live --model-dir assets --model fifth_model.tflite --camera 0
  robocam-classifier live --model-dir assets --gpu --duration 60
  robocam-classifier benchmark --model-dir assets --output benchmark.json
  robocam-classifier inspect --model-dir assets
"""
import argparse
import logging
import sys

from . import benchmark
from .app import ClassifierApp, ConsoleSurface
from .camera import CameraError, CameraStream, available_cameras
from .classifier import Classifier
from .config import (DEFAULT_MODEL_DIR, MEASURE_SECONDS, VX_DELEGATE_PATH,
                     WARMUP_SECONDS, config_from_args)
from .inspector import inspect_catalog


def build_parser():
    parser = argparse.ArgumentParser(
        prog='robocam-classifier',
        description='Live TFLite camera classifier and model latency benchmark'
    )
    parser.add_argument('--model-dir', default=DEFAULT_MODEL_DIR, help='Directory holding the .tflite models')
    parser.add_argument('--labels', default=None, help='Label file (default: <model-dir>/labels.txt)')
    parser.add_argument('--catalog', nargs='+', default=None, help='Override the model catalog')
    parser.add_argument('--delegate', default=VX_DELEGATE_PATH, help='Accelerator delegate library')
    parser.add_argument('--threads', type=int, default=4, help='CPU threads for non-accelerated runs')
    parser.add_argument('--camera', type=int, default=0, help='Camera index')
    parser.add_argument('--resolution', type=int, nargs=2, default=(320, 240),
                        metavar=('WIDTH', 'HEIGHT'), help='Capture resolution')
    parser.add_argument('--framerate', type=int, default=30, help='Capture frame rate')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    live = subparsers.add_parser('live', help='Classify the live camera stream')
    live.add_argument('--model', default=None, help='Catalog model to start with')
    live.add_argument('--gpu', action='store_true', help='Try the accelerator delegate')
    live.add_argument('--duration', type=float, default=None, help='Stop after N seconds')

    bench = subparsers.add_parser('benchmark', help='Benchmark every catalog model')
    bench.add_argument('--model', default=None, help='Model to restore after the benchmark')
    bench.add_argument('--gpu', action='store_true', help='Try the accelerator delegate')
    bench.add_argument('--warmup', type=float, default=WARMUP_SECONDS, help='Warmup seconds per model')
    bench.add_argument('--measure', type=float, default=MEASURE_SECONDS, help='Measuring seconds per model')
    bench.add_argument('--output', default=None, help='Save the ranked report as JSON')

    inspect = subparsers.add_parser('inspect', help='Print tensor metadata of catalog models')
    inspect.add_argument('--model', default=None, help='Inspect a single model')
    inspect.add_argument('--gpu', action='store_true', help='Load with the accelerator delegate')

    return parser


def _build_app(config, exit_after_benchmark=False):
    from .engine import make_engine_factory

    camera = CameraStream(config.camera_index, config.resolution, config.framerate)
    classifier = Classifier(make_engine_factory(config), labels_path=config.labels_path)
    return ClassifierApp(config, camera, classifier, surface=ConsoleSurface(),
                         exit_after_benchmark=exit_after_benchmark)


def run_live(config, duration=None):
    app = _build_app(config)
    print("Press Ctrl+C to quit")
    try:
        app.run(duration=duration)
    except KeyboardInterrupt:
        print("\nStopping...")
    return 0


def run_benchmark(config, output=None):
    app = _build_app(config, exit_after_benchmark=True)
    app.start_benchmark()
    try:
        app.run()
    except KeyboardInterrupt:
        print("\nBenchmark interrupted")
        return 1

    if app.last_report is None:
        return 1
    if output:
        path = benchmark.save_report(app.last_report, output, use_accelerator=config.use_gpu)
        print(f"\n📁 Detailed results saved to: {path}")
    return 0


def run_inspect(config, model_id=None):
    from .engine import make_engine_factory

    model_ids = [model_id] if model_id else list(config.catalog)
    failed = inspect_catalog(make_engine_factory(config), model_ids,
                             use_accelerator=config.use_gpu, resolve_path=config.model_path)
    print(f"\n{len(model_ids) - len(failed)}/{len(model_ids)} models OK")
    return 1 if failed else 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    try:
        config = config_from_args(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        if args.command == 'live':
            return run_live(config, duration=args.duration)
        if args.command == 'benchmark':
            return run_benchmark(config, output=args.output)
        return run_inspect(config, model_id=args.model)
    except CameraError as e:
        print(f"❌ {e}", file=sys.stderr)
        cameras = available_cameras()
        if cameras:
            print(f"Available cameras: {', '.join(str(i) for i in cameras)}", file=sys.stderr)
        else:
            print("No cameras found", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
