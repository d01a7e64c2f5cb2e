"""
Tensor encode / decode for TFLite classification models.

- encode: RGB pixels -> model input buffer (float32, or affine quantized
  uint8 / int8 using the input tensor's scale and zero point)
- decode: model output buffer -> float logits (dequantized when needed)
- softmax / argmax over the decoded logits
"""
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import numpy as np


class InvalidModelError(ValueError):
    """Model metadata that cannot be used for inference"""


class ElementType(Enum):
    FLOAT32 = "float32"
    UINT8 = "uint8"
    INT8 = "int8"

    @property
    def dtype(self):
        return np.dtype(self.value)

    @property
    def is_quantized(self):
        return self is not ElementType.FLOAT32

    @classmethod
    def from_dtype(cls, dtype):
        name = np.dtype(dtype).name
        for element_type in cls:
            if element_type.value == name:
                return element_type
        raise InvalidModelError(f"Unsupported tensor type: {name}")


# Representable range of each quantized type
QUANTIZED_RANGES = {
    ElementType.UINT8: (0, 255),
    ElementType.INT8: (-128, 127),
}


@dataclass(frozen=True)
class QuantizationParams:
    scale: float = 0.0
    zero_point: int = 0


@dataclass(frozen=True)
class TensorSpec:
    """Element type, shape and quantization of one model tensor"""
    element_type: ElementType
    shape: Tuple[int, ...]
    quantization: QuantizationParams = QuantizationParams()

    @property
    def is_quantized(self):
        return self.element_type.is_quantized

    @property
    def num_classes(self):
        return int(self.shape[-1])

    @property
    def input_size(self):
        """(height, width) of an NHWC input tensor"""
        if len(self.shape) != 4:
            raise InvalidModelError(f"Expected NHWC input shape, got {self.shape}")
        return int(self.shape[1]), int(self.shape[2])


def get_quantization_params(tensor_details):
    """Extract quantization parameters"""
    qparams = tensor_details.get('quantization_parameters', {})
    scales = qparams.get('scales', [])
    zero_points = qparams.get('zero_points', [])
    if len(scales) and len(zero_points):
        return float(scales[0]), int(zero_points[0])

    # Older interpreters only report the (scale, zero_point) tuple
    scale, zero_point = tensor_details.get('quantization', (0.0, 0))
    return float(scale), int(zero_point)


def tensor_spec_from_details(tensor_details):
    """Build a TensorSpec from interpreter tensor details"""
    scale, zero_point = get_quantization_params(tensor_details)
    return TensorSpec(
        element_type=ElementType.from_dtype(tensor_details['dtype']),
        shape=tuple(int(d) for d in tensor_details['shape']),
        quantization=QuantizationParams(scale=scale, zero_point=zero_point),
    )


def validate_input_spec(spec):
    """Reject input tensors that encode() cannot fill"""
    if len(spec.shape) != 4 or spec.shape[-1] != 3:
        raise InvalidModelError(f"Expected (1, H, W, 3) input, got {spec.shape}")
    if spec.is_quantized and spec.quantization.scale <= 0:
        raise InvalidModelError(
            f"Quantized input has invalid scale {spec.quantization.scale}"
        )


def _round_half_away(values):
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def encode(image, spec):
    """Encode an (H, W, 3) RGB image into the model's input layout"""
    height, width = spec.input_size
    if image.shape[:2] != (height, width):
        raise ValueError(
            f"Image is {image.shape[1]}x{image.shape[0]}, model expects {width}x{height}"
        )

    if not spec.is_quantized:
        # Raw 0-255 magnitudes, no normalization
        return image.astype(np.float32).reshape(spec.shape)

    # Double precision, float32 pushes values just below .5 onto it
    pixels = image.astype(np.float64)

    scale = spec.quantization.scale
    if scale <= 0:
        raise InvalidModelError(f"Quantized input has invalid scale {scale}")

    quantized = _round_half_away(pixels / scale + spec.quantization.zero_point)
    low, high = QUANTIZED_RANGES[spec.element_type]
    quantized_clipped = np.clip(quantized, low, high).astype(spec.element_type.dtype)
    return quantized_clipped.reshape(spec.shape)


def decode(output, spec):
    """Decode a raw output buffer into float logits"""
    raw_output = np.asarray(output).reshape(-1)

    if not spec.is_quantized:
        return raw_output.astype(np.float64)

    scale = spec.quantization.scale
    if scale > 0:
        return (raw_output.astype(np.float64) - spec.quantization.zero_point) * scale

    # Some exported models report a zero output scale
    return raw_output.astype(np.float64)


def softmax(logits):
    """Numerically stable softmax"""
    logits = np.asarray(logits, dtype=np.float64)
    if logits.size == 0:
        return logits
    exps = np.exp(logits - np.max(logits))
    return exps / np.sum(exps)


def argmax(probabilities):
    """Index of the first maximum, -1 for an empty vector"""
    probabilities = np.asarray(probabilities)
    if probabilities.size == 0:
        return -1
    return int(np.argmax(probabilities))
