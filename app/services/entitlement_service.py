"""
Entitlement Service

Client-side trial clock and unlock state machine:

    NOT_STARTED -> TRIAL_ACTIVE -> TRIAL_EXPIRED
    any state   -> UNLOCKED (absorbing)

TRIAL_EXPIRED is derived from the clock and never stored. The static unlock
codes ship inside the client and are trivially extractable; they are kept as
promotional codes, not as a security mechanism.
"""
import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from app.schemas import ErrorKind
from app.state_store import StateNamespace
from app.utils.timezone import from_epoch_millis, to_epoch_millis, utc_now


logger = logging.getLogger(__name__)

TRIAL_DURATION = timedelta(minutes=10)
COUNTDOWN_INTERVAL_SECONDS = 1.0

UNLOCK_CODES = frozenset({"LIVETV2024", "PREMIUM123", "UNLOCK456"})

TRIAL_START_KEY = "trial_start_time"
UNLOCKED_KEY = "is_unlocked"
ISSUED_KEY_KEY = "issued_license_key"


class EntitlementState(str, Enum):
    NOT_STARTED = "not_started"
    TRIAL_ACTIVE = "trial_active"
    TRIAL_EXPIRED = "trial_expired"
    UNLOCKED = "unlocked"


@dataclass(frozen=True, slots=True)
class EntitlementStatus:
    state: EntitlementState
    trial_start: datetime | None
    remaining: timedelta

    @property
    def has_access(self) -> bool:
        return self.state in (EntitlementState.TRIAL_ACTIVE, EntitlementState.UNLOCKED)


def trial_remaining(trial_start: datetime, now: datetime, duration: timedelta = TRIAL_DURATION) -> timedelta:
    """Time left in the trial, clamped at zero"""
    return max(timedelta(0), duration - (now - trial_start))


def normalize_code(code: str) -> str:
    return code.strip().upper()


class EntitlementManager:
    """Per-installation entitlement record persisted in the paywall namespace."""

    def __init__(
        self,
        namespace: StateNamespace,
        *,
        clock: Callable[[], datetime] = utc_now,
        trial_duration: timedelta = TRIAL_DURATION,
        unlock_codes: frozenset[str] = UNLOCK_CODES,
    ):
        self._namespace = namespace
        self._clock = clock
        self.trial_duration = trial_duration
        self._unlock_codes = frozenset(normalize_code(code) for code in unlock_codes)

    @property
    def is_unlocked(self) -> bool:
        return bool(self._namespace.get(UNLOCKED_KEY, False))

    @property
    def trial_start_time(self) -> datetime | None:
        millis = self._namespace.get(TRIAL_START_KEY)
        if not millis:
            return None
        return from_epoch_millis(int(millis))

    async def start_trial(self) -> datetime | None:
        """
        Start the trial clock if it has never been started.

        Replaying the call never resets the recorded start time, and it is a
        no-op once the device is unlocked.

        Returns:
            The recorded trial start time (None when unlocked before any trial)
        """
        if self.is_unlocked:
            return self.trial_start_time

        now_millis = to_epoch_millis(self._clock())

        def _apply(values: dict) -> None:
            if not values.get(TRIAL_START_KEY):
                values[TRIAL_START_KEY] = now_millis

        await self._namespace.edit(_apply)
        return self.trial_start_time

    def status(self, now: datetime | None = None) -> EntitlementStatus:
        """Derive the current entitlement state"""
        now = now or self._clock()
        trial_start = self.trial_start_time

        if self.is_unlocked:
            return EntitlementStatus(EntitlementState.UNLOCKED, trial_start, timedelta(0))
        if trial_start is None:
            return EntitlementStatus(EntitlementState.NOT_STARTED, None, self.trial_duration)

        remaining = trial_remaining(trial_start, now, self.trial_duration)
        state = EntitlementState.TRIAL_ACTIVE if remaining > timedelta(0) else EntitlementState.TRIAL_EXPIRED
        return EntitlementStatus(state, trial_start, remaining)

    async def remember_issued_key(self, license_key: str) -> None:
        """Store a key fetched from the payment status endpoint for this device"""
        await self._namespace.set(ISSUED_KEY_KEY, normalize_code(license_key))

    async def unlock(self, code: str) -> bool:
        """
        Try to unlock premium features

        Accepts a static promotional code or the key issued to this device.
        A rejected code leaves the state untouched; this never raises.

        Returns:
            True if the code was accepted
        """
        normalized = normalize_code(code)
        issued = self._namespace.get(ISSUED_KEY_KEY)

        if not normalized or (normalized not in self._unlock_codes and normalized != issued):
            logger.info("Unlock code rejected (%s)", ErrorKind.UNLOCK_REJECTED.value)
            return False

        await self._namespace.set(UNLOCKED_KEY, True)
        logger.info("Premium features unlocked")
        return True


class TrialCountdown:
    """
    Periodic re-evaluation of the entitlement status.

    Calls `on_tick` with the current status every interval and stops on its
    own once the device is unlocked. Use as an async context manager (or call
    stop()) so no periodic work outlives its consumer.
    """

    def __init__(
        self,
        manager: EntitlementManager,
        on_tick: Callable[[EntitlementStatus], None],
        *,
        interval: float = COUNTDOWN_INTERVAL_SECONDS,
    ):
        self._manager = manager
        self._on_tick = on_tick
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.warning("Trial countdown already running")
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            status = self._manager.status()
            try:
                self._on_tick(status)
            except Exception as e:
                logger.error(f"Trial countdown listener failed: {e}", exc_info=True)

            if status.state is EntitlementState.UNLOCKED:
                logger.debug("Device unlocked, trial countdown finished")
                return
            await asyncio.sleep(self._interval)

    async def __aenter__(self) -> "TrialCountdown":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
