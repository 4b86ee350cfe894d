from predvenue.history.recorder import (
    HISTORY_LIMIT,
    HistoryRecorder,
    is_duplicate,
    snapshot_from_pools,
)

__all__ = ["HISTORY_LIMIT", "HistoryRecorder", "is_duplicate", "snapshot_from_pools"]
