from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from ..types import NetworkInputSpec

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class TensorRTBackendConfig:
    """
    Configuration for TensorRT engine inference.

    Notes:
    - TensorRT engines require a CUDA-capable environment.
    - Device buffers are Torch CUDA tensors (no PyCUDA), allocated once per backend.
    """

    device: str = "cuda"
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    output_index: int = 0


def _torch_dtype_from_trt(trt_dtype) -> "object":
    import torch  # type: ignore

    # Avoid importing tensorrt types at module import time; compare by name.
    name = getattr(trt_dtype, "name", str(trt_dtype)).lower()
    if "float16" in name or "half" in name:
        return torch.float16
    if "int8" in name:
        return torch.int8
    if "int32" in name:
        return torch.int32
    if "bool" in name:
        return torch.bool
    return torch.float32


class TensorRTBackend:
    """
    TensorRT engine runner with instance-owned device buffers.

    The input tensor, output tensors, pinned host output and the CUDA stream are
    created in the constructor and reused by every `infer` call; `close()` releases
    them. The stream is synchronized before the output is read back.

    Supports both the tensor-name API (set_tensor_address + execute_async_v3) and the
    classic binding API (execute_async_v2), whichever the installed TensorRT exposes.
    """

    def __init__(
        self,
        engine_path: PathLike,
        spec: NetworkInputSpec,
        cfg: TensorRTBackendConfig = TensorRTBackendConfig(),
    ):
        try:
            import tensorrt as trt  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "tensorrt is required for the TensorRT backend. Install NVIDIA TensorRT Python bindings."
            ) from e

        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TensorRT backend buffers. Install with `pip install torch`.") from e

        self._trt = trt
        self._torch = torch
        self.spec = spec

        self.engine_path = Path(engine_path)
        if not self.engine_path.exists():
            raise FileNotFoundError(str(self.engine_path))

        self.device = torch.device(cfg.device)
        if self.device.type != "cuda":
            raise ValueError("TensorRTBackend requires a CUDA device (device='cuda').")
        if not torch.cuda.is_available():  # pragma: no cover
            raise RuntimeError("CUDA is not available in this torch install, but TensorRT requires CUDA.")

        logger.info("Initialization start: %s", self.engine_path)

        self._trt_logger = trt.Logger(trt.Logger.WARNING)
        self.runtime = trt.Runtime(self._trt_logger)
        engine = self.runtime.deserialize_cuda_engine(self.engine_path.read_bytes())
        if engine is None:
            raise RuntimeError(f"Failed to deserialize TensorRT engine: {self.engine_path}")

        self.engine = engine
        self.context = engine.create_execution_context()
        if self.context is None:
            raise RuntimeError("Failed to create TensorRT execution context.")

        self._use_io_tensors = hasattr(engine, "num_io_tensors")
        self.input_name, self.output_names = self._discover_io(cfg.input_name)
        if cfg.output_name is not None:
            if cfg.output_name not in self.output_names:
                raise ValueError(f"Output name {cfg.output_name!r} not found. Available: {self.output_names}")
            self.primary_output = cfg.output_name
        else:
            if cfg.output_index < 0 or cfg.output_index >= len(self.output_names):
                raise IndexError(f"output_index {cfg.output_index} out of range (num outputs={len(self.output_names)}).")
            self.primary_output = self.output_names[cfg.output_index]

        self.stream = torch.cuda.Stream(device=self.device)
        self._allocate_buffers()

        logger.info(
            "Initialization finish: input=%s%s output=%s%s",
            self.input_name,
            tuple(self._input.shape),
            self.primary_output,
            tuple(self._outputs[self.primary_output].shape),
        )

    def _discover_io(self, preferred_input: Optional[str]) -> Tuple[str, List[str]]:
        trt = self._trt
        engine = self.engine

        if self._use_io_tensors:
            names = [engine.get_tensor_name(i) for i in range(engine.num_io_tensors)]
            inputs = [n for n in names if engine.get_tensor_mode(n) == trt.TensorIOMode.INPUT]
            outputs = [n for n in names if engine.get_tensor_mode(n) == trt.TensorIOMode.OUTPUT]
        else:
            # Older binding API
            inputs = []
            outputs = []
            for i in range(engine.num_bindings):
                name = engine.get_binding_name(i)
                if engine.binding_is_input(i):
                    inputs.append(name)
                else:
                    outputs.append(name)

        if not inputs:
            raise RuntimeError("TensorRT engine has no inputs.")
        if not outputs:
            raise RuntimeError("TensorRT engine has no outputs.")
        input_name = preferred_input or inputs[0]
        if input_name not in inputs:
            raise ValueError(f"Input name {input_name!r} not found. Available: {inputs}")
        return input_name, outputs

    def _allocate_buffers(self) -> None:
        torch = self._torch
        ctx = self.context
        engine = self.engine
        spec = self.spec
        input_shape = (spec.batch_size, 3, spec.input_height, spec.input_width)

        self._outputs: Dict[str, "object"] = {}
        if self._use_io_tensors:
            # Fixes the shape of dynamic engines; a no-op for static ones.
            ctx.set_input_shape(self.input_name, input_shape)
            in_dtype = _torch_dtype_from_trt(engine.get_tensor_dtype(self.input_name))
            self._input = torch.empty(size=input_shape, dtype=in_dtype, device=self.device)
            ctx.set_tensor_address(self.input_name, int(self._input.data_ptr()))
            for name in self.output_names:
                shape = tuple(int(s) for s in ctx.get_tensor_shape(name))
                dtype = _torch_dtype_from_trt(engine.get_tensor_dtype(name))
                self._outputs[name] = torch.empty(size=shape, dtype=dtype, device=self.device)
                ctx.set_tensor_address(name, int(self._outputs[name].data_ptr()))
            self._bindings: List[int] = []
        else:
            input_idx = engine.get_binding_index(self.input_name)
            ctx.set_binding_shape(input_idx, input_shape)
            in_dtype = _torch_dtype_from_trt(engine.get_binding_dtype(input_idx))
            self._input = torch.empty(size=input_shape, dtype=in_dtype, device=self.device)
            self._bindings = [0] * engine.num_bindings
            self._bindings[input_idx] = int(self._input.data_ptr())
            for name in self.output_names:
                out_idx = engine.get_binding_index(name)
                shape = tuple(int(s) for s in ctx.get_binding_shape(out_idx))
                dtype = _torch_dtype_from_trt(engine.get_binding_dtype(out_idx))
                t = torch.empty(size=shape, dtype=dtype, device=self.device)
                self._outputs[name] = t
                self._bindings[out_idx] = int(t.data_ptr())

        primary = self._outputs[self.primary_output]
        self._host_output = torch.empty(size=tuple(primary.shape), dtype=primary.dtype, pin_memory=True)

    def infer(self, blob: np.ndarray, batch_count: int) -> np.ndarray:
        """
        Run the engine on the full input buffer and return the primary output.

        `batch_count` slots of the output are meaningful; the rest belong to slots the
        caller did not fill this time.
        """

        torch = self._torch
        if self.context is None:
            raise RuntimeError("TensorRT backend has been closed.")
        if blob is None:
            raise TypeError("blob must be a NumPy array.")
        if batch_count < 1 or batch_count > self.spec.batch_size:
            raise ValueError(f"batch_count must be in [1, {self.spec.batch_size}], got {batch_count}")

        ctx = self.context
        with torch.cuda.stream(self.stream):
            self._input.copy_(torch.from_numpy(np.ascontiguousarray(blob)), non_blocking=True)
            handle = int(self.stream.cuda_stream)
            if self._use_io_tensors:
                if not hasattr(ctx, "execute_async_v3"):
                    raise RuntimeError("TensorRT context does not support execute_async_v3 with IO tensors.")
                ok = ctx.execute_async_v3(handle)
            else:
                if not hasattr(ctx, "execute_async_v2"):
                    raise RuntimeError("TensorRT context does not support execute_async_v2.")
                ok = ctx.execute_async_v2(bindings=self._bindings, stream_handle=handle)
            if not ok:  # pragma: no cover
                raise RuntimeError("TensorRT execution failed.")
            self._host_output.copy_(self._outputs[self.primary_output], non_blocking=True)

        # Never read the host copy before the device is done with it.
        self.stream.synchronize()
        return self._host_output.numpy()

    def close(self) -> None:
        if self.context is None:
            return
        self.stream.synchronize()
        self._outputs = {}
        self._bindings = []
        self._input = None
        self._host_output = None
        self.context = None
        self.engine = None
        self.runtime = None
        logger.info("Destruction finish: %s", self.engine_path)
