from __future__ import annotations


class DrivewatchError(Exception):
    pass


class BackendUnavailable(DrivewatchError):
    """Folder resolution or change query against Drive failed."""


class PersistenceFailure(DrivewatchError):
    """Watermark write did not commit."""


class DeliveryFailure(DrivewatchError):
    """A channel exhausted its retries."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel
