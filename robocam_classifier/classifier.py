"""
Image classifier around one loaded TFLite model.

- load_model(): releases the previous engine, picks CPU or accelerator, reads
  the input/output tensor specs back
- predict(): rotate / crop / resize (untimed), then encode -> run -> decode ->
  softmax -> argmax inside the timed region
"""
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

import cv2

from . import tensor_codec
from .config import INPUT_SIZE
from .tensor_codec import InvalidModelError, validate_input_spec

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class ClassificationResult:
    label: str
    confidence: float
    inference_time_ms: int


@dataclass(frozen=True)
class ModelHandle:
    """Identity and tensor metadata of the live model"""
    model_id: str
    using_accelerator: bool
    input_spec: Optional[tensor_codec.TensorSpec] = None
    output_spec: Optional[tensor_codec.TensorSpec] = None

    @property
    def has_metadata(self):
        return self.input_spec is not None and self.output_spec is not None


def load_labels(path):
    """Read a newline-delimited label file, None if it cannot be read"""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return [line.strip() for line in f if line.strip()]
    except OSError as e:
        logger.error("Error loading labels from %s: %s", path, e)
        return None


def is_integer_variant(model_id):
    """File-name convention for integer quantized models"""
    return 'integer' in os.path.basename(str(model_id))


def preprocess_image(image, size=INPUT_SIZE):
    """Rotate 90 degrees, center-crop to a square and resize to size x size"""
    rotated = cv2.rotate(image, cv2.ROTATE_90_CLOCKWISE)
    height, width = rotated.shape[:2]
    side = min(width, height)
    top = (height - side) // 2
    left = (width - side) // 2
    cropped = rotated[top:top + side, left:left + side]
    return cv2.resize(cropped, (size, size), interpolation=cv2.INTER_LINEAR)


class Classifier:
    def __init__(self, engine_factory, labels_path=None, clock=time.perf_counter):
        self._engine_factory = engine_factory
        self._labels_path = labels_path
        self._clock = clock
        self._engine = None
        self._labels = None
        self.handle = None

    @property
    def labels(self):
        return self._labels

    def release(self):
        """Close the current engine, if any"""
        if self._engine is not None:
            self._engine.close()
            self._engine = None
        self.handle = None

    def load_model(self, model_id, use_gpu=False):
        """Load a model, returning its ModelHandle or None on failure"""
        self.release()

        try:
            engine, input_spec, output_spec = self._open_engine(model_id, use_gpu)
        except Exception:
            logger.exception("Error loading model %s", model_id)
            return None

        if input_spec is not None:
            try:
                validate_input_spec(input_spec)
            except InvalidModelError as e:
                logger.error("Model %s rejected: %s", model_id, e)
                engine.close()
                return None

        self._engine = engine
        self.handle = ModelHandle(
            model_id=model_id,
            using_accelerator=getattr(engine, 'using_accelerator', False),
            input_spec=input_spec,
            output_spec=output_spec,
        )
        self._load_labels()

        if input_spec is not None:
            logger.info("Model loaded: %s (input %s %s, scale=%s, zp=%s)",
                        model_id, input_spec.element_type.value, input_spec.shape,
                        input_spec.quantization.scale, input_spec.quantization.zero_point)
        return self.handle

    def _open_engine(self, model_id, use_gpu):
        if not use_gpu:
            engine = self._engine_factory(model_id, False)
            return (engine,) + self._read_specs(engine, model_id)

        # Read the input type on CPU first, integer kernels stay there
        engine = self._engine_factory(model_id, False)
        input_spec, output_spec = self._read_specs(engine, model_id)
        if input_spec is not None:
            integer_model = input_spec.is_quantized
        else:
            integer_model = is_integer_variant(model_id)

        if integer_model:
            logger.info("Integer model %s, forcing CPU execution", model_id)
            return engine, input_spec, output_spec

        engine.close()
        engine = self._engine_factory(model_id, True)
        return (engine,) + self._read_specs(engine, model_id)

    def _read_specs(self, engine, model_id):
        try:
            return engine.input_spec(), engine.output_spec()
        except Exception as e:
            logger.warning("Could not read tensor types of %s: %s", model_id, e)
            return None, None

    def _load_labels(self):
        if self._labels_path is None:
            self._labels = None
            return
        self._labels = load_labels(self._labels_path)

    def _label_for(self, index):
        if self._labels is None or not 0 <= index < len(self._labels):
            return UNKNOWN_LABEL
        return self._labels[index]

    def predict(self, image):
        """Classify one RGB image, None if no usable model is loaded"""
        engine = self._engine
        handle = self.handle
        if engine is None or handle is None or not handle.has_metadata:
            return None

        try:
            # Preprocessing (excluded from timing)
            height, width = handle.input_spec.input_size
            processed = preprocess_image(image, size=width)
            if height != width:
                processed = cv2.resize(processed, (width, height), interpolation=cv2.INTER_LINEAR)

            start = self._clock()
            input_buffer = tensor_codec.encode(processed, handle.input_spec)
            raw_output = engine.run(input_buffer)
            logits = tensor_codec.decode(raw_output, handle.output_spec)
            probabilities = tensor_codec.softmax(logits)
            index = tensor_codec.argmax(probabilities)
            elapsed_ms = int((self._clock() - start) * 1000)
        except Exception:
            logger.exception("Error during prediction")
            return None

        confidence = float(probabilities[index]) if index >= 0 else 0.0
        return ClassificationResult(
            label=self._label_for(index),
            confidence=confidence,
            inference_time_ms=max(elapsed_ms, 0),
        )
