from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class RuntimeContext:
    """
    Per-process settings for the guard that sit outside the policy itself.

    trace_path=None disables the decision trace.
    """

    run_id: str
    trace_path: Optional[Path] = None
