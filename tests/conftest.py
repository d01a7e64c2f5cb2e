from concurrent.futures import Future

import numpy as np
import pytest

from robocam_classifier.tensor_codec import ElementType, QuantizationParams, TensorSpec


class FakeEngine:
    """Stands in for TFLiteEngine; returns a fixed output vector"""

    def __init__(self, model_id, use_accelerator, input_spec, output_spec, output=None,
                 fail_metadata=False):
        self.model_id = model_id
        self.using_accelerator = use_accelerator
        self._input_spec = input_spec
        self._output_spec = output_spec
        self.output = output
        self.fail_metadata = fail_metadata
        self.closed = False
        self.run_inputs = []

    def input_spec(self):
        if self.fail_metadata:
            raise RuntimeError("no metadata")
        return self._input_spec

    def output_spec(self):
        if self.fail_metadata:
            raise RuntimeError("no metadata")
        return self._output_spec

    def run(self, input_buffer):
        if self.closed:
            raise RuntimeError("engine closed")
        self.run_inputs.append(input_buffer)
        return np.asarray(self.output).reshape(self._output_spec.shape)

    def close(self):
        self.closed = True


class FakeEngineFactory:
    """Records every engine it opens"""

    def __init__(self, input_spec, output_spec, output=None, fail_models=(),
                 fail_metadata=False):
        self.input_spec = input_spec
        self.output_spec = output_spec
        self.output = output if output is not None else np.zeros(output_spec.num_classes)
        self.fail_models = set(fail_models)
        self.fail_metadata = fail_metadata
        self.opened = []

    def __call__(self, model_id, use_accelerator):
        if model_id in self.fail_models:
            raise ValueError(f"cannot open {model_id}")
        engine = FakeEngine(model_id, use_accelerator, self.input_spec, self.output_spec,
                            output=self.output, fail_metadata=self.fail_metadata)
        self.opened.append(engine)
        return engine


class FakeCamera:
    def __init__(self):
        self.callback = None
        self.initialized = False
        self.disposed = False
        self.calls = []

    def initialize(self):
        self.initialized = True
        self.calls.append('initialize')
        return self

    def start_image_stream(self, callback):
        self.callback = callback
        self.calls.append('start')

    def stop_image_stream(self):
        self.callback = None
        self.calls.append('stop')

    def dispose(self):
        self.disposed = True

    def emit(self, image):
        if self.callback is not None:
            self.callback(image)


class InlineExecutor:
    """Runs submitted work immediately on the calling thread"""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_input_spec(element_type=ElementType.FLOAT32, size=224, scale=0.0, zero_point=0):
    return TensorSpec(element_type, (1, size, size, 3), QuantizationParams(scale, zero_point))


def make_output_spec(element_type=ElementType.FLOAT32, num_classes=4, scale=0.0, zero_point=0):
    return TensorSpec(element_type, (1, num_classes), QuantizationParams(scale, zero_point))


@pytest.fixture
def float_specs():
    return make_input_spec(), make_output_spec()


@pytest.fixture
def labels_file(tmp_path):
    path = tmp_path / 'labels.txt'
    path.write_text("cat\n\n  dog  \nbird\n   \nfish\n")
    return path


@pytest.fixture
def clock():
    return FakeClock()
