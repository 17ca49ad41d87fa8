"""
Per-tile health state machine and fatal error debouncer.

A tile is HEALTHY or STALLED. Transitions are driven by three events and
resolved through an explicit transition table so the behaviour is
deterministic and unit-testable:

=========  ================  =========  =====================================
state      event             next       effects
=========  ================  =========  =====================================
HEALTHY    FATAL_ERROR       HEALTHY    mitigate, arm debounce
HEALTHY    PLAYING           HEALTHY    cancel debounce, reset attempts
HEALTHY    DEBOUNCE_EXPIRED  STALLED    start recovery
STALLED    FATAL_ERROR       STALLED    (recovery owns mitigation)
STALLED    PLAYING           HEALTHY    cancel debounce, stop recovery,
                                        reset attempts
STALLED    DEBOUNCE_EXPIRED  STALLED    (stale, ignored)
=========  ================  =========  =====================================

At most one debounce timer is pending per tile. Only the first fatal error of
a window is dispatched; further fatal errors inside the window are logged and
neither mitigate again nor restart the timer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from multiview.infra.logging import get_logger

from .recovery import RecoveryScheduler
from .timers import TimerHandle, TimerScheduler
from .transport import ErrorKind, StreamSourceAdapter, TransportErrorEvent

_log = get_logger(__name__)

DEFAULT_DEBOUNCE_TIMEOUT = 10.0


class HealthState(str, Enum):
    HEALTHY = "healthy"
    STALLED = "stalled"


class HealthEvent(str, Enum):
    FATAL_ERROR = "fatal_error"
    PLAYING = "playing"
    DEBOUNCE_EXPIRED = "debounce_expired"


class Effect(str, Enum):
    MITIGATE = "mitigate"
    ARM_DEBOUNCE = "arm_debounce"
    CANCEL_DEBOUNCE = "cancel_debounce"
    START_RECOVERY = "start_recovery"
    STOP_RECOVERY = "stop_recovery"
    RESET_ATTEMPTS = "reset_attempts"


@dataclass(frozen=True)
class Transition:
    next_state: HealthState
    effects: tuple[Effect, ...] = ()


TRANSITIONS: dict[tuple[HealthState, HealthEvent], Transition] = {
    (HealthState.HEALTHY, HealthEvent.FATAL_ERROR): Transition(
        HealthState.HEALTHY, (Effect.MITIGATE, Effect.ARM_DEBOUNCE)
    ),
    (HealthState.HEALTHY, HealthEvent.PLAYING): Transition(
        HealthState.HEALTHY, (Effect.CANCEL_DEBOUNCE, Effect.RESET_ATTEMPTS)
    ),
    (HealthState.HEALTHY, HealthEvent.DEBOUNCE_EXPIRED): Transition(
        HealthState.STALLED, (Effect.START_RECOVERY,)
    ),
    (HealthState.STALLED, HealthEvent.FATAL_ERROR): Transition(HealthState.STALLED),
    (HealthState.STALLED, HealthEvent.PLAYING): Transition(
        HealthState.HEALTHY,
        (Effect.CANCEL_DEBOUNCE, Effect.STOP_RECOVERY, Effect.RESET_ATTEMPTS),
    ),
    (HealthState.STALLED, HealthEvent.DEBOUNCE_EXPIRED): Transition(HealthState.STALLED),
}


class HealthStateMachine:
    """Pure state holder resolving events against :data:`TRANSITIONS`."""

    def __init__(self, initial: HealthState = HealthState.HEALTHY) -> None:
        self.state = initial

    def apply(self, event: HealthEvent) -> Transition:
        transition = TRANSITIONS[(self.state, event)]
        self.state = transition.next_state
        return transition


StateListener = Callable[[HealthState], None]


class FatalErrorDebouncer:
    """Collapses bursts of fatal transport errors into one debounced stall.

    Owns the tile's :class:`HealthStateMachine` and its single debounce timer,
    and starts/stops the tile's :class:`RecoveryScheduler` as the machine
    dictates. ``on_state_change`` is invoked on every state edge.
    """

    def __init__(
        self,
        adapter: StreamSourceAdapter,
        recovery: RecoveryScheduler,
        scheduler: TimerScheduler,
        *,
        timeout: float = DEFAULT_DEBOUNCE_TIMEOUT,
        on_state_change: StateListener | None = None,
        tile_index: int = -1,
    ) -> None:
        if timeout <= 0.0:
            raise ValueError("timeout must be greater than zero")
        self._adapter = adapter
        self._recovery = recovery
        self._scheduler = scheduler
        self._timeout = timeout
        self._on_state_change = on_state_change
        self._tile_index = tile_index
        self._machine = HealthStateMachine()
        self._timer: TimerHandle | None = None
        self._pending_kind = ErrorKind.UNKNOWN
        self._closed = False

    @property
    def state(self) -> HealthState:
        return self._machine.state

    @property
    def debounce_pending(self) -> bool:
        return self._timer is not None

    # Inputs ----------------------------------------------------------------

    def on_transport_error(self, event: TransportErrorEvent) -> None:
        if self._closed:
            return
        if not event.fatal:
            _log.debug(
                "transport_error_nonfatal",
                tile=self._tile_index,
                kind=event.kind.value,
                details=event.details,
            )
            return
        _log.warning(
            "transport_error_fatal",
            tile=self._tile_index,
            kind=event.kind.value,
            state=self.state.value,
            details=event.details,
        )
        if self.debounce_pending:
            # Absorbed by the open window; only its first error mitigates.
            return
        self._pending_kind = event.kind
        self._dispatch(HealthEvent.FATAL_ERROR)

    def on_playing(self) -> None:
        if self._closed:
            return
        self._dispatch(HealthEvent.PLAYING)

    def reset(self) -> None:
        """Return to HEALTHY with no timers; used on external reattachment."""
        self._cancel_timer()
        self._recovery.stop()
        self._recovery.reset_attempts()
        self._set_state(HealthState.HEALTHY)

    def close(self) -> None:
        self._closed = True
        self._cancel_timer()
        self._recovery.stop()

    # Machinery -------------------------------------------------------------

    def _dispatch(self, event: HealthEvent) -> None:
        previous = self._machine.state
        transition = self._machine.apply(event)
        for effect in transition.effects:
            self._run_effect(effect)
        if transition.next_state is not previous:
            self._notify(previous, transition.next_state)

    def _run_effect(self, effect: Effect) -> None:
        if effect is Effect.MITIGATE:
            self._adapter.mitigate(self._pending_kind)
        elif effect is Effect.ARM_DEBOUNCE:
            self._arm_timer()
        elif effect is Effect.CANCEL_DEBOUNCE:
            self._cancel_timer()
        elif effect is Effect.START_RECOVERY:
            self._recovery.start()
        elif effect is Effect.STOP_RECOVERY:
            self._recovery.stop()
        elif effect is Effect.RESET_ATTEMPTS:
            self._recovery.reset_attempts()

    def _arm_timer(self) -> None:
        if self._timer is not None:
            return
        self._timer = self._scheduler.call_later(self._timeout, self._on_timer_fired)
        _log.info("debounce_armed", tile=self._tile_index, timeout=self._timeout)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _on_timer_fired(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._dispatch(HealthEvent.DEBOUNCE_EXPIRED)

    def _set_state(self, state: HealthState) -> None:
        previous = self._machine.state
        self._machine.state = state
        if state is not previous:
            self._notify(previous, state)

    def _notify(self, previous: HealthState, state: HealthState) -> None:
        if state is HealthState.STALLED:
            _log.error("tile_stalled", tile=self._tile_index, url=self._adapter.url)
        else:
            _log.info("tile_recovered", tile=self._tile_index, previous=previous.value)
        if self._on_state_change is not None:
            self._on_state_change(state)
