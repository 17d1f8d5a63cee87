"""
Behavior Trace Validator

Decodes the client-recorded interaction trace (base64 of a JSON array of
pointer/key/click events) and checks it for human-like timing and movement.

Checks, each one a terminal failure:
- missing:              no trace submitted
- decode_error:         not base64, or an empty payload
- not_enough_events:    not a JSON event array, or fewer than MIN_EVENTS
- non_monotonic_time:   timestamps not strictly increasing
- too_short:            total duration not above MIN_DURATION_MS
- low_movement:         pointer path length not above MIN_DISTANCE
- low_timing_variance:  inter-event deltas too regular (std < MIN_DELTA_STD_MS)
"""

import base64
import binascii
import json
import logging
from typing import List, Tuple

import numpy as np
from pydantic import TypeAdapter, ValidationError

from formsentry.schemas.inputs import BehaviorEvent


logger = logging.getLogger(__name__)

# =============================================================================
# THRESHOLDS
# =============================================================================

MIN_EVENTS = 5

# Duration between first and last event (client ms)
MIN_DURATION_MS = 600

# Cumulative pointer travel (client px)
MIN_DISTANCE = 40.0

# Population std of inter-event deltas (ms)
MIN_DELTA_STD_MS = 10.0

# Failure tags
MISSING = "missing"
DECODE_ERROR = "decode_error"
NOT_ENOUGH_EVENTS = "not_enough_events"
NON_MONOTONIC_TIME = "non_monotonic_time"
TOO_SHORT = "too_short"
LOW_MOVEMENT = "low_movement"
LOW_TIMING_VARIANCE = "low_timing_variance"

_EVENTS_ADAPTER = TypeAdapter(List[BehaviorEvent])


class BehaviorDecodeError(ValueError):
    """Raised when a trace cannot be turned into events. Carries the failure tag."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason


class BehaviorValidator:
    """
    Stateless validator for client interaction traces.

    A pure function of its input: the trace is decoded once per call and
    discarded afterwards.
    """

    def validate(self, encoded: str) -> Tuple[bool, str]:
        """
        Validate an encoded trace.

        Args:
            encoded: base64 of a JSON array of event objects

        Returns:
            (True, "") when the trace looks human, otherwise
            (False, <failure tag>).
        """
        try:
            events = self.decode(encoded)
        except BehaviorDecodeError as e:
            logger.debug(f"Behavior trace rejected: {e}")
            return False, e.reason

        if len(events) < MIN_EVENTS:
            return False, NOT_ENOUGH_EVENTS

        timestamps = np.array([e.t for e in events], dtype=np.float64)
        deltas = np.diff(timestamps)

        if np.any(deltas <= 0):
            return False, NON_MONOTONIC_TIME

        if timestamps[-1] - timestamps[0] <= MIN_DURATION_MS:
            return False, TOO_SHORT

        if self._path_distance(events) <= MIN_DISTANCE:
            return False, LOW_MOVEMENT

        # np.std defaults to the population form (ddof=0)
        if deltas.mean() > 0 and deltas.std() < MIN_DELTA_STD_MS:
            return False, LOW_TIMING_VARIANCE

        return True, ""

    def decode(self, encoded: str) -> List[BehaviorEvent]:
        """
        Decode a trace into events.

        Raises:
            BehaviorDecodeError: with reason missing, decode_error or
                not_enough_events.
        """
        if not encoded:
            raise BehaviorDecodeError(MISSING)

        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise BehaviorDecodeError(DECODE_ERROR, str(e))
        if not raw:
            raise BehaviorDecodeError(DECODE_ERROR, "empty payload")

        try:
            return _EVENTS_ADAPTER.validate_python(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise BehaviorDecodeError(NOT_ENOUGH_EVENTS, str(e))
        except RecursionError:
            raise BehaviorDecodeError(NOT_ENOUGH_EVENTS, "nesting too deep")

    def _path_distance(self, events: List[BehaviorEvent]) -> float:
        """Total Euclidean travel between consecutive positional events."""
        points = np.array(
            [(e.x, e.y) for e in events if e.has_position],
            dtype=np.float64,
        )
        if len(points) < 2:
            return 0.0
        steps = np.diff(points, axis=0)
        return float(np.hypot(steps[:, 0], steps[:, 1]).sum())
