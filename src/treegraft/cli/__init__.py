"""treegraft CLI: atomic rename, copy, revert and branch operations."""

from ._helpers import main  # noqa: F401 (entry point)

# Import command modules to register Click commands with the main group.
from . import _ops, _refs  # noqa: F401
