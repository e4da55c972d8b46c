"""Remove redundant escape sequences from terminal output."""

from __future__ import annotations

__version__ = "0.1.0"

from ansi_optimizer.optimizer import Optimizer, optimize, optimize_chunks
from ansi_optimizer.rewriter import RewriterOptions

__all__ = [
    "__version__",
    "Optimizer",
    "RewriterOptions",
    "optimize",
    "optimize_chunks",
]
