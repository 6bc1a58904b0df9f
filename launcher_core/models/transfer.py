"""
In-memory models for a single artifact transfer.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime


class CancelToken:
    """
    Cooperative cancellation signal shared between a caller and a transfer.

    Cancelling is sticky: once set, every subsequent check reports cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class TransferSession:
    """
    Progress counters for one streamed download.

    Discarded once the transfer finishes.
    """

    url: str
    total_bytes: int = 0  # 0 when the server does not report a length
    bytes_read: int = 0
    cancel_token: CancelToken = field(default_factory=CancelToken)
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def size_known(self) -> bool:
        return self.total_bytes > 0

    @property
    def progress_percent(self) -> float:
        """
        Calculate download progress as percentage (0-100).

        :return: Progress percentage, 0.0 when the total size is unknown
        :rtype: float
        """
        if self.total_bytes <= 0:
            return 0.0
        return min(100.0, (self.bytes_read / self.total_bytes) * 100.0)
