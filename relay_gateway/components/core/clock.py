"""
Wall-clock helpers.

All timestamps on the wire are integer milliseconds since the Unix epoch.
"""

import time


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)
