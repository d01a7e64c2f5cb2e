"""
Runtime configuration and the fixed model catalog.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

# Benchmark iteration order
DEFAULT_MODEL_CATALOG = (
    'fifth_float16_quant.tflite',
    'fifth_dynamic_quant.tflite',
    'fifth_integer_quant.tflite',
    'baseline_dynamic_quant.tflite',
    'baseline_float16_quant.tflite',
    'baseline_integer_quant.tflite',
    'forth_dynamic_quant.tflite',
    'forth_float16_quant.tflite',
    'forth_integer_quant.tflite',
    'second_dynamic_quant.tflite',
    'second_float16_quant.tflite',
    'second_integer_quant.tflite',
    'forth_model.tflite',
    'second_model.tflite',
    'baseline_model.tflite',
    'fifth_model.tflite',
)

DEFAULT_MODEL_DIR = Path('assets')
DEFAULT_LABELS_FILE = 'labels.txt'
VX_DELEGATE_PATH = '/usr/lib/libvx_delegate.so'

INPUT_SIZE = 224
FRAME_DECIMATION = 3
WARMUP_SECONDS = 5.0
MEASURE_SECONDS = 20.0
SMOOTHING = 0.8


@dataclass
class AppConfig:
    model_dir: Path = DEFAULT_MODEL_DIR
    labels_path: Optional[Path] = None
    catalog: Tuple[str, ...] = DEFAULT_MODEL_CATALOG
    selected_model: Optional[str] = None
    use_gpu: bool = False
    delegate_path: str = VX_DELEGATE_PATH
    num_threads: int = 4

    camera_index: int = 0
    resolution: Tuple[int, int] = (320, 240)  # low preset, (width, height)
    framerate: int = 30
    frame_decimation: int = FRAME_DECIMATION

    warmup_seconds: float = WARMUP_SECONDS
    measure_seconds: float = MEASURE_SECONDS
    smoothing: float = SMOOTHING

    def __post_init__(self):
        self.model_dir = Path(self.model_dir)
        if self.labels_path is None:
            self.labels_path = self.model_dir / DEFAULT_LABELS_FILE
        if not self.catalog:
            raise ValueError("Model catalog is empty")
        if self.selected_model is None:
            self.selected_model = self.catalog[0]
        if self.frame_decimation < 1:
            raise ValueError(f"frame_decimation must be >= 1, got {self.frame_decimation}")

    def model_path(self, model_id):
        """Resolve a catalog identifier against the model directory"""
        path = Path(model_id)
        if path.is_absolute():
            return path
        return self.model_dir / path


def config_from_args(args):
    """Build an AppConfig from parsed command line arguments"""
    catalog = tuple(args.catalog) if getattr(args, 'catalog', None) else DEFAULT_MODEL_CATALOG
    return AppConfig(
        model_dir=args.model_dir,
        labels_path=args.labels,
        catalog=catalog,
        selected_model=getattr(args, 'model', None),
        use_gpu=getattr(args, 'gpu', False),
        delegate_path=args.delegate,
        num_threads=args.threads,
        camera_index=args.camera,
        resolution=tuple(args.resolution),
        framerate=args.framerate,
        warmup_seconds=getattr(args, 'warmup', WARMUP_SECONDS),
        measure_seconds=getattr(args, 'measure', MEASURE_SECONDS),
    )
