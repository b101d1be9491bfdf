"""Pointer-driven state machine for the before/after comparison divider.

The slider has two states, ``idle`` and ``dragging``::

    idle --press--> dragging --release--> idle
    dragging --move--> dragging   (position follows the pointer)

A press relocates the divider immediately, so a single click or tap already
moves it.  While dragging, moves are honoured wherever they happen on the
input surface; the :class:`CaptureScope` contract lets a toolkit adapter
observe move and release events beyond the slider's own bounds.  Moves after
a release are ignored until the next press.

Everything here is synchronous and free of I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol


DEFAULT_POSITION = 50.0


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


@dataclass(frozen=True)
class ContainerBounds:
    """Horizontal geometry of the comparison surface in pointer coordinates."""

    left: float
    width: float

    def fraction_percent(self, x: float) -> float:
        """Return ``x`` as a clamped percentage of the container width."""

        if self.width <= 0:
            return 0.0
        return clamp_percent(100.0 * (x - self.left) / self.width)


@dataclass(frozen=True)
class SliderState:
    position_percent: float = DEFAULT_POSITION
    dragging: bool = False


PositionListener = Callable[[float], None]


class CaptureTarget(Protocol):
    def move(self, x: float, bounds: ContainerBounds) -> bool: ...

    def release(self) -> None: ...


class CaptureScope(Protocol):
    """Region that observes move/release events for an active drag.

    Adapters attach when a drag starts and forward every move and release
    observed anywhere on the input surface to the target, then detach.
    """

    def attach(self, target: CaptureTarget) -> None: ...

    def detach(self) -> None: ...


class CompareSlider:
    """Maintain the divider position for a pair of compared images."""

    def __init__(
        self,
        initial_position: float = DEFAULT_POSITION,
        *,
        capture_scope: Optional[CaptureScope] = None,
    ) -> None:
        self._state = SliderState(clamp_percent(initial_position), False)
        self._capture_scope = capture_scope
        self._listeners: List[PositionListener] = []

    @property
    def state(self) -> SliderState:
        return self._state

    @property
    def position_percent(self) -> float:
        return self._state.position_percent

    @property
    def dragging(self) -> bool:
        return self._state.dragging

    def set_capture_scope(self, scope: Optional[CaptureScope]) -> None:
        if self._capture_scope is not None and self._state.dragging:
            self._capture_scope.detach()
        self._capture_scope = scope
        if scope is not None and self._state.dragging:
            scope.attach(self)

    def subscribe(self, listener: PositionListener) -> Callable[[], None]:
        """Call ``listener`` with the new position whenever it changes."""

        if listener not in self._listeners:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Input events
    # ------------------------------------------------------------------
    def press(self, x: float, bounds: ContainerBounds) -> float:
        """Start dragging and move the divider under ``x``."""

        was_dragging = self._state.dragging
        self._set_state(SliderState(bounds.fraction_percent(x), True))
        if not was_dragging and self._capture_scope is not None:
            self._capture_scope.attach(self)
        return self._state.position_percent

    def move(self, x: float, bounds: ContainerBounds) -> bool:
        """Follow the pointer while dragging.

        Returns ``True`` when the event belongs to an active drag, in which
        case the caller should suppress default scrolling and selection.
        """

        if not self._state.dragging:
            return False
        self._set_state(SliderState(bounds.fraction_percent(x), True))
        return True

    def release(self) -> None:
        if not self._state.dragging:
            return
        self._state = SliderState(self._state.position_percent, False)
        if self._capture_scope is not None:
            self._capture_scope.detach()

    def reset(self, position: float = DEFAULT_POSITION) -> None:
        """Return to ``position`` and end any drag; used when the image pair changes."""

        self.release()
        self._set_state(SliderState(clamp_percent(position), False))

    def _set_state(self, state: SliderState) -> None:
        previous = self._state.position_percent
        self._state = state
        if state.position_percent != previous:
            for listener in list(self._listeners):
                listener(state.position_percent)
