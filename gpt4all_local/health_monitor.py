"""
Resource monitoring for the bot process.

Reports:
- Memory usage
- CPU usage
- Uptime
"""

import logging
import time
from typing import Dict

import psutil

logger = logging.getLogger(__name__)


def get_process_stats(pid: int, cpu_interval: float = 0.1) -> Dict:
    """
    Get current resource metrics for a process.

    Args:
        pid: Process id of the bot
        cpu_interval: Seconds over which CPU usage is averaged

    Returns:
        Dictionary with metrics, empty if the process is gone
    """
    try:
        process = psutil.Process(pid)
        with process.oneshot():
            memory_mb = process.memory_info().rss / (1024 * 1024)
            uptime = time.time() - process.create_time()
            status = process.status()
        cpu_percent = process.cpu_percent(interval=cpu_interval)

        return {
            "pid": pid,
            "status": status,
            "memory_mb": round(memory_mb, 2),
            "cpu_percent": round(cpu_percent, 2),
            "uptime_seconds": round(uptime, 1),
        }

    except psutil.Error as e:
        logger.warning(f"Could not collect stats for pid {pid}: {e}")
        return {}
