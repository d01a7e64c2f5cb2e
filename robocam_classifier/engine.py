"""
TFLite inference engine adapter.

Wraps one tflite Interpreter: optional accelerator delegate with CPU fallback,
tensor metadata as TensorSpec, and a synchronous run().
"""
import logging
import os
import time

import numpy as np

try:
    import tflite_runtime.interpreter as tflite
except ImportError:
    # tflite-runtime has no wheels for newer interpreters, LiteRT is its successor
    from ai_edge_litert import interpreter as tflite

from .tensor_codec import tensor_spec_from_details

logger = logging.getLogger(__name__)


class TFLiteEngine:
    def __init__(self, model_path, use_accelerator=False, delegate_path=None, num_threads=4):
        self.model_path = str(model_path)
        self.using_accelerator = False

        logger.info("Loading model: %s", os.path.basename(self.model_path))
        load_start = time.time()

        if use_accelerator and delegate_path:
            try:
                self._interpreter = tflite.Interpreter(
                    model_path=self.model_path,
                    experimental_delegates=[tflite.load_delegate(delegate_path)]
                )
                self._interpreter.allocate_tensors()
                self.using_accelerator = True
            except Exception as e:
                logger.warning("Accelerator delegate failed, using CPU: %s", e)

        if not self.using_accelerator:
            self._interpreter = tflite.Interpreter(
                model_path=self.model_path,
                num_threads=num_threads
            )
            self._interpreter.allocate_tensors()

        load_time = (time.time() - load_start) * 1000
        logger.info("Model ready in %.0fms (accelerator: %s)",
                    load_time, 'on' if self.using_accelerator else 'off')

    def _require_interpreter(self):
        if self._interpreter is None:
            raise RuntimeError(f"Engine for {self.model_path} is closed")
        return self._interpreter

    def input_spec(self):
        details = self._require_interpreter().get_input_details()
        return tensor_spec_from_details(details[0])

    def output_spec(self):
        details = self._require_interpreter().get_output_details()
        return tensor_spec_from_details(details[0])

    def run(self, input_buffer):
        """Run one inference and return a copy of the first output tensor"""
        interpreter = self._require_interpreter()
        input_index = interpreter.get_input_details()[0]['index']
        output_index = interpreter.get_output_details()[0]['index']

        interpreter.set_tensor(input_index, input_buffer)
        interpreter.invoke()
        return np.array(interpreter.get_tensor(output_index))

    def close(self):
        self._interpreter = None


def make_engine_factory(config):
    """Engine factory bound to the configured model directory and delegate"""
    def factory(model_id, use_accelerator):
        return TFLiteEngine(
            config.model_path(model_id),
            use_accelerator=use_accelerator,
            delegate_path=config.delegate_path,
            num_threads=config.num_threads,
        )
    return factory
