from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

MAX_WORKERS = 16


class CoordinatorConfig(BaseModel):
    """Tunables for one Coordinator."""
    max_workers: int = Field(default=MAX_WORKERS, ge=1)
    debug: bool = False
    log_dir: Optional[Path] = None

    @classmethod
    def from_env(cls) -> CoordinatorConfig:
        """Build a config from STEPFLOW_* environment variables."""
        return cls(
            max_workers=os.environ.get("STEPFLOW_MAX_WORKERS", str(MAX_WORKERS)),
            debug=os.environ.get("STEPFLOW_DEBUG", "false"),
            log_dir=os.environ.get("STEPFLOW_LOG_DIR") or None,
        )
