from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import requests

from anamnesportalen.client import AnamnesisClient, ApiError
from anamnesportalen.config import settings
from anamnesportalen.logging_config import token_prefix
from anamnesportalen.tokens import utcnow
from anamnesportalen.validation import is_empty

logger = logging.getLogger(__name__)

AnswersGetter = Callable[[], Optional[Dict[str, Any]]]


def has_values(answers: Optional[Dict[str, Any]]) -> bool:
    return bool(answers) and any(not is_empty(v) for v in answers.values())


class AutoSaver:
    """
    Periodically ships the in-progress answers to the draft endpoint.

    A failed save is reported through `on_error` once per run of consecutive
    failures and the timer keeps going; the answers themselves stay with the
    caller, so nothing is lost. `cancel()` stops the timer and waits for a save
    already in flight (it is never aborted).
    """

    def __init__(
        self,
        client: AnamnesisClient,
        on_error: Callable[[Exception], None] = None,
        interval: float = None,
    ):
        self.client = client
        self.on_error = on_error
        self.interval = interval if interval is not None else settings.AUTOSAVE_INTERVAL_SECONDS
        self.last_saved: Optional[datetime] = None
        self.last_error: Optional[Exception] = None

        self._token: Optional[str] = None
        self._get_answers: Optional[AnswersGetter] = None
        self._stop = threading.Event()
        self._save_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._failing = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def schedule(self, token: Optional[str], get_answers: AnswersGetter, interval: float = None) -> bool:
        """Start saving every `interval` seconds. Returns False when there is no token."""
        self.cancel()
        if not token:
            logger.debug("Auto-save not scheduled: no token")
            return False

        self._token = token
        self._get_answers = get_answers
        if interval is not None:
            self.interval = interval

        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="autosave", daemon=True)
        self._thread.start()
        logger.info("Auto-save every %ss for token %s", self.interval, token_prefix(token))
        return True

    def _run(self):
        while not self._stop.wait(self.interval):
            self.save_now()

    def save_now(self) -> bool:
        """Save the current snapshot. Returns True when a draft was stored."""
        if not self._token or self._get_answers is None:
            return False

        snapshot = dict(self._get_answers() or {})
        if not has_values(snapshot):
            return False

        with self._save_lock:
            try:
                self.client.save_draft(self._token, snapshot)
            except (requests.RequestException, ApiError) as e:
                self.last_error = e
                logger.warning("Auto-save failed for token %s: %s", token_prefix(self._token), e)
                if not self._failing:
                    self._failing = True
                    self._notify(e)
                return False

        self._failing = False
        self.last_error = None
        self.last_saved = utcnow()
        return True

    def _notify(self, error: Exception):
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            # runs on the timer thread; a broken callback must not stop saving
            logger.exception("Auto-save error callback failed")

    def cancel(self):
        """Stop the timer. Safe to call repeatedly."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
