"""Operator-initiated cancellation shared between pipeline stages."""

import threading

from crossdeploy.exceptions import PipelineCancelled


class CancelToken:
    """Thread-safe cancellation flag.

    The CLI sets it from its KeyboardInterrupt handler; stages poll it at
    their boundaries (and the deployer once more between upload and rename).
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason = None

    def cancel(self, reason: str = "cancelled by operator") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str) -> None:
        """Raise PipelineCancelled if cancellation was requested."""
        if self._event.is_set():
            raise PipelineCancelled(f"{self.reason} (observed {where})")
