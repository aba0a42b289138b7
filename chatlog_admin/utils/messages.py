"""
Tier-worded notification text with caching.
Wording lives in resources/messages.yaml and is loaded once.
"""

from collections import deque
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable

import yaml

from chatlog_admin.models.domain import DeviceProfile
from chatlog_admin.models.schemas import Notification
from chatlog_admin.utils.logger import get_logger

logger = get_logger(__name__)

HISTORY_LIMIT = 50


@lru_cache(maxsize=1)
def load_messages() -> dict:
    """
    Loads notification wording from YAML with LRU cache.

    Returns:
        Mapping of message key to per-tier templates

    Raises:
        FileNotFoundError: If messages.yaml is missing from the package
    """
    path = Path(__file__).parent.parent / "resources" / "messages.yaml"
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def render_message(key: str, tier: str, **values: Any) -> str:
    """
    Render the ``tier`` wording of message ``key``.

    Unknown tiers fall back to compact wording.
    """
    templates = load_messages()[key]
    template = templates.get(tier, templates["compact"])
    return template.format(**values)


class Notifier:
    """
    Publishes user-visible notifications worded for the active tier.

    Success notices for deletions stay until dismissed; everything else
    auto-dismisses after the tier's notice duration.
    """

    def __init__(self, profile: DeviceProfile, history_limit: int = HISTORY_LIMIT):
        self.profile = profile
        self.current: Notification | None = None
        self.history: deque[Notification] = deque(maxlen=history_limit)
        self._listeners: list[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def success(self, key: str, sticky: bool = False, **values: Any) -> Notification:
        duration = None if sticky else self.profile.success_notice_ms
        return self._publish("success", key, duration, values)

    def error(self, key: str, **values: Any) -> Notification:
        return self._publish("error", key, self.profile.error_notice_ms, values)

    def dismiss(self) -> None:
        self.current = None

    def _publish(
        self, kind: str, key: str, duration: int | None, values: dict[str, Any]
    ) -> Notification:
        notification = Notification(
            kind=kind,
            message=render_message(key, self.profile.tier, **values),
            duration_ms=duration,
        )
        self.current = notification
        self.history.append(notification)
        logger.info("notification_published", kind=kind, key=key)

        for listener in self._listeners:
            listener(notification)
        return notification
