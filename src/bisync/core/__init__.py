"""Runtime plumbing shared by the sync engine and the CLI."""

from .async_utils import run_pool
from .lifecycle import CancelToken, Once

__all__ = ["CancelToken", "Once", "run_pool"]
