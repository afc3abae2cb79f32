"""Token usage harvested from the Copilot CLI process logs."""
from __future__ import annotations

import logging
from pathlib import Path

from agentviz import config
from agentviz.models import TokenUsage
from agentviz.parsers.token_usage import UNKNOWN_SESSION, scan_log_dir

logger = logging.getLogger("agentviz.sources")


class LogUsageSource:
    def __init__(self, log_dir: Path | None = None, window_days: int | None = None):
        self.log_dir = log_dir if log_dir is not None else config.LOG_DIR
        self.window_days = window_days if window_days is not None else config.TOKEN_USAGE_WINDOW_DAYS

    def fetch_usage(self) -> dict[str, TokenUsage]:
        usage = scan_log_dir(self.log_dir, self.window_days)
        unattributed = usage.get(UNKNOWN_SESSION)
        if unattributed is not None:
            logger.debug("%d model calls could not be attributed to a session", unattributed.calls)
        return usage
