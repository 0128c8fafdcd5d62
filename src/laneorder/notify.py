"""User-facing messages for settled mutations."""

import logging

logger = logging.getLogger(__name__)

SUCCESS_MESSAGES = {
    "create": "Project created successfully!",
    "update": "Project updated successfully!",
    "move": "Project moved successfully!",
    "delete": "Project deleted successfully!",
}


class Notifier:
    """Receives one message per settled mutation."""

    def success(self, kind: str, message: str) -> None:
        raise NotImplementedError

    def error(self, kind: str, message: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    def success(self, kind: str, message: str) -> None:
        logger.info("[%s] %s", kind, message)

    def error(self, kind: str, message: str) -> None:
        logger.error("[%s] %s", kind, message)
