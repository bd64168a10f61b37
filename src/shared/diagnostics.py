"""Resource diagnostics logged at phase boundaries."""

import logging
from typing import Any

import psutil

logger = logging.getLogger(__name__)


def get_memory_info() -> dict[str, Any]:
    """Get process and system memory usage."""
    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        system_memory = psutil.virtual_memory()

        return {
            'process_rss_mb': round(memory_info.rss / 1024 / 1024, 2),
            'process_vms_mb': round(memory_info.vms / 1024 / 1024, 2),
            'system_available_mb': round(system_memory.available / 1024 / 1024, 2),
            'system_used_percent': system_memory.percent,
        }
    except psutil.Error as e:
        return {'error': f'Failed to get memory info: {e}'}


def log_memory_usage(context: str = '') -> None:
    info = get_memory_info()
    if 'error' in info:
        logger.debug('Memory info unavailable (%s): %s', context, info['error'])
        return
    logger.info(
        'Memory [%s]: rss=%.1f MB, vms=%.1f MB, system available=%.1f MB (%.1f%% used)',
        context,
        info['process_rss_mb'],
        info['process_vms_mb'],
        info['system_available_mb'],
        info['system_used_percent'],
    )
