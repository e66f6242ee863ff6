"""Background garbage collection of expired and revoked refresh tokens."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.database import SessionLocal
from app.core.metrics import SWEPT_TOKENS
from app.services.refresh_token_ledger import RefreshTokenLedger

logger = logging.getLogger(__name__)


class TokenSweeper:
    """Periodically runs RefreshTokenLedger.sweep_expired on its own session."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self._interval = interval_seconds
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._swept_total: int = 0
        self._lock = threading.Lock()

    @property
    def interval(self) -> float:
        return self._interval if self._interval is not None else settings.TOKEN_SWEEP_INTERVAL_SECONDS

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="token-sweeper", daemon=True)
        self._thread.start()
        logger.info("Token sweeper started (interval=%ss)", self.interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        logger.info("Token sweeper stopped")

    def status(self) -> dict:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "swept_total": self._swept_total,
        }

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.sweep_once()
            except SQLAlchemyError as exc:
                logger.error("Token sweep failed: %s", exc)
            except Exception as exc:
                logger.exception("Token sweep crashed, retrying next interval: %s", exc)
            self._heartbeat = time.time()
            self._stop_event.wait(max(1.0, self.interval))

    def sweep_once(self) -> int:
        db = self._session_factory()
        try:
            deleted = RefreshTokenLedger(db).sweep_expired()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
        with self._lock:
            self._swept_total += deleted
        SWEPT_TOKENS.inc(deleted)
        return deleted


token_sweeper = TokenSweeper()
