"""
Error taxonomy for the detection pipeline.

All checks happen before the accelerator is touched, except `InvokerFailure`
which wraps whatever the inference call raised. Nothing here is retried
internally; recovery policy belongs to the caller.
"""

from __future__ import annotations


class DetectKitError(Exception):
    """Base class for every error raised by `detect_kit`."""


class ConfigurationError(DetectKitError, ValueError):
    """Malformed network spec, oversized batch, or a detector used after close()."""


class InputError(DetectKitError, ValueError):
    """Zero-area or malformed image rejected before the shared buffer is touched."""


class InvokerFailure(DetectKitError, RuntimeError):
    """The opaque inference call failed or returned a buffer of the wrong size."""
