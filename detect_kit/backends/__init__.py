"""
Optional inference backends for detect_kit.

Backends are kept in a separate module so core functionality (pre/post-processing)
stays lightweight and can be used without installing inference runtimes.

Each backend exposes `infer(input_buffer, batch_count) -> output_buffer` and `close()`.
"""

from __future__ import annotations

__all__ = []
