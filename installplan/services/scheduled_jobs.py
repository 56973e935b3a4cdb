"""
Installation Planning Service
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - evm_daily_snapshot: materialise daily EVM snapshots for all open projects
"""

from __future__ import annotations

import logging
from typing import Any

from installplan.services.scheduler_service import register_job
from installplan.services.snapshot import snapshot_daily_evm

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Daily EVM snapshot
# ═══════════════════════════════════════════════════════════════════════════

@register_job("evm_daily_snapshot")
def run_evm_daily_snapshot(app) -> dict[str, Any]:
    """Snapshot EVM metrics per project, PWBS and work package (daily, 00:00 UTC)."""
    report = snapshot_daily_evm()
    if report["failures"]:
        logger.warning("EVM daily snapshot finished with %d failed project(s): %s",
                       len(report["failures"]),
                       ", ".join(f["project_number"] for f in report["failures"]),
                       extra={"job_name": "evm_daily_snapshot"})
    return report
