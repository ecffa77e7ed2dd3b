from typing import Dict, Mapping, Optional
import logging
import threading

logger = logging.getLogger(__name__)


class ClassificationCache:
    """
    Remembers, per syslog app name, whether the app writes JSON messages.

    The first message from an unknown app decides its classification. A JSON
    app that sends one message which fails to decode is demoted for the rest
    of the process lifetime. Apps are never demoted back in the other
    direction.

    Handlers run concurrently, so every read-modify-write happens under a lock.
    """

    def __init__(self, seed: Optional[Mapping[str, bool]] = None):
        self._lock = threading.Lock()
        self._apps: Dict[str, bool] = dict(seed or {})

    def lookup(self, app_name: str) -> Optional[bool]:
        """Known classification for an app, or None when not seen yet."""
        with self._lock:
            return self._apps.get(app_name)

    def learn(self, app_name: str, is_json: bool) -> bool:
        """
        Record the classification of a newly observed app.

        Returns the classification now in effect. If another handler
        classified the app first, its answer wins and is returned.
        """
        with self._lock:
            current = self._apps.get(app_name)
            if current is not None:
                return current
            self._apps[app_name] = is_json

        if is_json:
            logger.info(f"White listing JSON app {app_name}")
        return is_json

    def demote(self, app_name: str) -> bool:
        """
        Mark an app as not emitting JSON.

        Returns True when this call changed the classification.
        """
        with self._lock:
            changed = self._apps.get(app_name) is True
            self._apps[app_name] = False

        if changed:
            logger.warning(f"Failed to parse JSON, black listing {app_name}")
        return changed

    def snapshot(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._apps)

    def __len__(self) -> int:
        with self._lock:
            return len(self._apps)
