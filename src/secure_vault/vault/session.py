"""Session manager: owner of the single live vault key.

State machine::

    SIGNED_OUT ──unlock──▶ UNLOCKING ──ok──▶ UNLOCKED ──lock/idle──▶ LOCKED
        ▲                     │                  │                     │
        └──────failure────────┘                  └──────sign_out───────┴──▶ SIGNED_OUT

Key design:
    - One ``threading.RLock`` serialises every transition and every lease
      acquisition, so a reader never observes a half-swapped key.
    - ``lease()`` hands out the live key for the duration of one operation.
      Locking while a lease is open drops the session's reference at once
      (no new operation can start) and the key bytes are zeroed as soon as
      the last lease closes.
    - Inactivity auto-lock is checked lazily on every lease and, when
      ``start_auto_lock()`` is called, by a background watcher thread
      (a thread, since the crypto calls are synchronous).
    - The clock is injectable for tests.
"""

import logging
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, List, Optional

from ..core.exceptions import AuthenticationFailed, NotAuthenticated
from .encryption import DerivedKey, KeyDerivation

logger = logging.getLogger(__name__)

DEFAULT_AUTO_LOCK_MINUTES = 15
DEFAULT_WATCH_INTERVAL = 5  # seconds between idle checks


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"
    LOCKED = "locked"


class LockReason(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"
    SIGN_OUT = "sign_out"


class SessionManager:
    """Holds at most one DerivedKey for the signed-in user."""

    def __init__(
        self,
        kdf: Optional[KeyDerivation] = None,
        auto_lock_minutes: float = DEFAULT_AUTO_LOCK_MINUTES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._kdf = kdf or KeyDerivation()
        self._clock = clock
        self._lock = threading.RLock()

        self._state = SessionState.SIGNED_OUT
        self._key: Optional[DerivedKey] = None
        self._user_id: Optional[str] = None
        self._last_activity = clock()
        self._auto_lock_seconds = 0.0
        self.set_auto_lock_minutes(auto_lock_minutes)

        self._listeners: List[Callable[[LockReason], None]] = []

        # Background idle watcher
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Properties ──────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def user_id(self) -> Optional[str]:
        with self._lock:
            return self._user_id

    @property
    def is_unlocked(self) -> bool:
        return self.state is SessionState.UNLOCKED

    @property
    def salt(self) -> Optional[bytes]:
        with self._lock:
            return self._key.salt if self._key is not None else None

    @property
    def auto_lock_minutes(self) -> float:
        return self._auto_lock_seconds / 60

    def set_auto_lock_minutes(self, minutes: float) -> None:
        if minutes <= 0:
            raise ValueError("auto_lock_minutes must be positive")
        with self._lock:
            self._auto_lock_seconds = float(minutes) * 60

    def on_lock(self, callback: Callable[[LockReason], None]) -> None:
        """Subscribe to lock transitions (manual, auto, sign-out)."""
        self._listeners.append(callback)

    # ── Transitions ─────────────────────────────────────────────

    def unlock(self, master_secret: str, user_id: str, salt: Optional[bytes] = None) -> None:
        """Derive the session key and enter UNLOCKED.

        Args:
            master_secret: User's master password (never stored)
            user_id: Identity-provider user id; partition key for the store
            salt: Stored salt for this user, or None for a fresh one

        Raises:
            AuthenticationFailed: Any failure; the session is SIGNED_OUT after.
        """
        with self._lock:
            was_signed_in = self._state is not SessionState.SIGNED_OUT
            self._discard_key()
            self._state = SessionState.UNLOCKING
            try:
                if not user_id:
                    raise ValueError("user_id is required")
                key, _ = self._kdf.derive(master_secret, salt)
            except Exception as exc:
                self._state = SessionState.SIGNED_OUT
                self._user_id = None
                logger.info("Unlock failed: %s", type(exc).__name__)
                if was_signed_in:
                    self._notify(LockReason.SIGN_OUT)
                raise AuthenticationFailed("Authentication failed") from exc

            self._key = key
            self._user_id = user_id
            self._last_activity = self._clock()
            self._state = SessionState.UNLOCKED
            logger.info("Session unlocked for user=%s", user_id)

    def lock(self) -> None:
        """Drop the key but remember the identity."""
        self._leave_unlocked(SessionState.LOCKED, LockReason.MANUAL)

    def sign_out(self) -> None:
        """Drop the key and the identity, from any state."""
        self._leave_unlocked(SessionState.SIGNED_OUT, LockReason.SIGN_OUT)

    def check_idle(self) -> bool:
        """Auto-lock if the idle timeout has elapsed. Returns True if it locked."""
        with self._lock:
            if self._state is not SessionState.UNLOCKED:
                return False
            idle = self._clock() - self._last_activity
            if idle < self._auto_lock_seconds:
                return False
            logger.info("Auto-locking session after %.0fs idle", idle)
            self._leave_unlocked(SessionState.LOCKED, LockReason.AUTO)
        return True

    def touch(self) -> None:
        """Record user activity, postponing the auto-lock."""
        with self._lock:
            if self._state is SessionState.UNLOCKED:
                self._last_activity = self._clock()

    def _leave_unlocked(self, target: SessionState, reason: LockReason) -> None:
        with self._lock:
            was_unlocked = self._state is SessionState.UNLOCKED
            was_signed_in = self._state is not SessionState.SIGNED_OUT
            self._discard_key()
            self._state = target
            if target is SessionState.SIGNED_OUT:
                self._user_id = None
            elif self._user_id is None:
                # Nothing to remember; a lock without identity is a sign-out.
                self._state = SessionState.SIGNED_OUT
        if was_unlocked or (reason is LockReason.SIGN_OUT and was_signed_in):
            self._notify(reason)

    def _discard_key(self) -> None:
        key, self._key = self._key, None
        if key is not None:
            key.destroy()

    def _notify(self, reason: LockReason) -> None:
        for callback in list(self._listeners):
            try:
                callback(reason)
            except Exception:
                logger.exception("Lock listener failed")

    # ── Key access ──────────────────────────────────────────────

    @contextmanager
    def lease(self) -> Iterator[DerivedKey]:
        """Yield the live key for one operation.

        Raises:
            NotAuthenticated: Session is not UNLOCKED (or just idled out).
        """
        self.check_idle()
        with self._lock:
            if self._state is not SessionState.UNLOCKED or self._key is None:
                raise NotAuthenticated("Vault is locked. Unlock vault first.")
            key = self._key.retain()
            user_id = self._user_id
            self._last_activity = self._clock()
        try:
            yield key
        finally:
            key.release()
        logger.debug("Lease released for user=%s", user_id)

    def require_user(self) -> str:
        """Return the signed-in user id or raise NotAuthenticated."""
        with self._lock:
            if self._state is not SessionState.UNLOCKED or self._user_id is None:
                raise NotAuthenticated("Vault is locked. Unlock vault first.")
            return self._user_id

    # ── Background watcher ──────────────────────────────────────

    def start_auto_lock(self, interval: float = DEFAULT_WATCH_INTERVAL) -> None:
        """Start the background idle watcher thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            args=(interval,),
            name="vault-auto-lock",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Auto-lock watcher started (timeout=%.1fmin, interval=%.1fs)",
            self.auto_lock_minutes, interval,
        )

    def stop_auto_lock(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None

    def _watch_loop(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            try:
                self.check_idle()
            except Exception:
                logger.exception("Auto-lock check failed")

    def close(self) -> None:
        """Stop the watcher and sign out (process teardown)."""
        self.stop_auto_lock()
        self.sign_out()
