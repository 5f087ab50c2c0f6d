from __future__ import annotations

from utils.log import get_logger


class NotificationSink:
    """Where user-visible summaries go. Subclasses decide how they are shown."""

    def notify(self, title: str, message: str, level: str = "info") -> None:
        raise NotImplementedError


class LogNotificationSink(NotificationSink):
    def __init__(self, logger=None):
        self.logger = logger or get_logger("notify")

    def notify(self, title: str, message: str, level: str = "info") -> None:
        log = self.logger.error if level == "error" else self.logger.warning if level == "warning" else self.logger.info
        log(f"{title}: {message}", level=level)

