"""
Model inspector - print tensor metadata of catalog models and sanity check
them with a dummy input.
"""
import logging
import os

import numpy as np

from .tensor_codec import InvalidModelError, decode, softmax, validate_input_spec

logger = logging.getLogger(__name__)


def describe_spec(spec):
    if spec.is_quantized:
        quantization = (f"scale={spec.quantization.scale:.6f}, "
                        f"zero_point={spec.quantization.zero_point}")
    else:
        quantization = "None (floating point)"
    return f"{spec.element_type.value} {list(spec.shape)} | Quantization: {quantization}"


def dummy_input(spec, rng=None):
    """Random input buffer matching the tensor spec"""
    rng = rng or np.random.default_rng()
    dtype = spec.element_type.dtype
    if spec.is_quantized:
        info = np.iinfo(dtype)
        return rng.integers(info.min, info.max, size=spec.shape, dtype=dtype, endpoint=True)
    return (rng.random(spec.shape) * 255.0).astype(dtype)


def inspect_model(engine_factory, model_id, use_accelerator=False, model_path=None):
    """Load one model, print its tensors and run a dummy inference"""
    print(f"\nInspecting model: {model_id}")
    print("=" * 60)

    try:
        engine = engine_factory(model_id, use_accelerator)
    except Exception as e:
        print(f"ERROR: Failed to load model - {e}")
        return False

    try:
        input_spec = engine.input_spec()
        output_spec = engine.output_spec()
        print(f"  Accelerator: {'on' if engine.using_accelerator else 'off'}")
        print(f"  Input:  {describe_spec(input_spec)}")
        print(f"  Output: {describe_spec(output_spec)}")

        try:
            validate_input_spec(input_spec)
        except InvalidModelError as e:
            print(f"  ⚠️  WARNING: {e}")
            return False

        raw_output = engine.run(dummy_input(input_spec))
        probabilities = softmax(decode(raw_output, output_spec))
        unique_values = len(np.unique(raw_output))
        print(f"  Output range: [{np.min(raw_output)}, {np.max(raw_output)}], "
              f"unique values: {unique_values}, top probability: {np.max(probabilities):.4f}")

        if unique_values == 1:
            print("  ⚠️  WARNING: All output values are identical!")
        elif unique_values < 10:
            print("  ⚠️  WARNING: Very few unique values - possible quantization issue")
        else:
            print("  ✓ Output shows variation - model appears functional")

        if model_path is not None and os.path.exists(model_path):
            file_size = os.path.getsize(model_path)
            print(f"  File size: {file_size:,} bytes ({file_size/1024/1024:.1f} MB)")
    except Exception as e:
        logger.exception("Inspection of %s failed", model_id)
        print(f"ERROR: Inspection failed - {e}")
        return False
    finally:
        engine.close()

    return True


def inspect_catalog(engine_factory, model_ids, use_accelerator=False, resolve_path=None):
    """Inspect every model, returning the ids that failed"""
    failed = []
    for model_id in model_ids:
        model_path = resolve_path(model_id) if resolve_path else None
        if not inspect_model(engine_factory, model_id, use_accelerator, model_path):
            failed.append(model_id)
    return failed
