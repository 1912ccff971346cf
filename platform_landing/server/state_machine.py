"""State machine for flight phase management."""

import logging
from enum import IntEnum
from typing import Dict, FrozenSet

logger = logging.getLogger(__name__)


class FlightPhase(IntEnum):
    """Flight phases of the landing sequence (values are sent to the platform)."""

    IDLE = 0  # Waiting for the sequence to be armed
    STAB = 1  # Optical stabilization over the marker
    LAND = 2  # Optical landing (descending)
    PREV = 3  # Marker lost, holding the previous position
    LOST = 4  # Marker completely lost, flight aborted
    TAKEOFF = 5  # Waypoint handshake and takeoff
    WAYPOINT = 6  # Flying to the platform by GPS
    DONE = 7  # Landed, motors stopped


# Phases with an active optical correction loop
OPTICAL_PHASES = (FlightPhase.STAB, FlightPhase.LAND, FlightPhase.PREV)


def _build_transitions() -> Dict[FlightPhase, FrozenSet[FlightPhase]]:
    table: Dict[FlightPhase, set] = {phase: set() for phase in FlightPhase}

    # Sequence armed with live links
    table[FlightPhase.IDLE].add(FlightPhase.TAKEOFF)

    # Marker in sight
    for phase in (
        FlightPhase.IDLE,
        FlightPhase.TAKEOFF,
        FlightPhase.WAYPOINT,
        FlightPhase.PREV,
        FlightPhase.LOST,
    ):
        table[phase].add(FlightPhase.STAB)

    table[FlightPhase.TAKEOFF].add(FlightPhase.WAYPOINT)
    table[FlightPhase.STAB].update((FlightPhase.LAND, FlightPhase.PREV))
    table[FlightPhase.LAND].update((FlightPhase.STAB, FlightPhase.PREV, FlightPhase.DONE))
    table[FlightPhase.LOST].add(FlightPhase.WAYPOINT)

    # Explicit abort or loss escalation
    for phase in FlightPhase:
        table[phase].update((FlightPhase.IDLE, FlightPhase.LOST))
        table[phase].discard(phase)

    return {phase: frozenset(targets) for phase, targets in table.items()}


TRANSITIONS = _build_transitions()


class StateMachine:
    """
    State machine for the flight phases.

    IDLE is initial and DONE is terminal (reachable only from LAND). Any
    phase may be forced to IDLE or LOST. Only the position controller
    drives transitions.
    """

    def __init__(self):
        """Initialize state machine in IDLE phase."""
        self._state = FlightPhase.IDLE

    @property
    def state(self) -> FlightPhase:
        """Get current phase."""
        return self._state

    def can_transition_to(self, target: FlightPhase) -> bool:
        """Check if transition to target phase is valid."""
        return target in TRANSITIONS[self._state]

    def transition_to(self, target: FlightPhase) -> bool:
        """
        Attempt to transition to target phase.

        Args:
            target: Target phase.

        Returns:
            True if transition succeeded, False otherwise.
        """
        if not self.can_transition_to(target):
            logger.warning(f"Invalid transition: {self._state.name} -> {target.name}")
            return False

        old_state = self._state
        self._state = target
        logger.info(f"Phase transition: {old_state.name} -> {target.name}")
        return True

    def reset(self) -> None:
        """Reset state machine to IDLE."""
        old_state = self._state
        self._state = FlightPhase.IDLE
        if old_state != FlightPhase.IDLE:
            logger.info(f"Phase reset: {old_state.name} -> IDLE")

