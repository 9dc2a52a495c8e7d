"""
GeoSample filter: decides whether a raw fix is good enough to use.

Rules, first match wins:
  1. horizontal accuracy worse than the threshold (or negative = invalid)
  2. implied speed from the previous accepted point above the plausible bound
  3. timestamp not strictly later than the previous accepted point

The first sample of a session only has to pass rule 1. The filter is pure:
callers must not touch any accumulator when a sample is rejected.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from runtrack.tracking.geo import haversine_m
from runtrack.tracking.samples import GeoSample, TrackPoint

logger = logging.getLogger(__name__)

DEFAULT_MAX_ACCURACY_M = 20.0
DEFAULT_MAX_SPEED_MS = 12.0


class RejectReason(str, Enum):
    LOW_ACCURACY = "low_accuracy"
    IMPLAUSIBLE_JUMP = "implausible_jump"
    OUT_OF_ORDER = "out_of_order"


@dataclass(frozen=True)
class FilterResult:
    accepted: bool
    reason: Optional[RejectReason] = None


ACCEPTED = FilterResult(accepted=True)


class GeoSampleFilter:
    """Accept/reject raw fixes against the previously accepted point."""

    def __init__(
        self,
        max_horizontal_accuracy_m: float = DEFAULT_MAX_ACCURACY_M,
        max_speed_ms: float = DEFAULT_MAX_SPEED_MS,
    ):
        self.max_horizontal_accuracy_m = max_horizontal_accuracy_m
        self.max_speed_ms = max_speed_ms

    def evaluate(self, sample: GeoSample, previous: Optional[TrackPoint]) -> FilterResult:
        accuracy = sample.horizontal_accuracy
        if (
            not math.isfinite(accuracy)
            or accuracy < 0
            or accuracy > self.max_horizontal_accuracy_m
        ):
            return self._reject(RejectReason.LOW_ACCURACY, sample)

        if previous is None:
            return ACCEPTED

        dt = (sample.timestamp - previous.timestamp).total_seconds()
        if dt > 0:
            distance = haversine_m(
                previous.latitude, previous.longitude,
                sample.latitude, sample.longitude,
            )
            if distance / dt > self.max_speed_ms:
                return self._reject(RejectReason.IMPLAUSIBLE_JUMP, sample)
        else:
            return self._reject(RejectReason.OUT_OF_ORDER, sample)

        return ACCEPTED

    def accepts(self, sample: GeoSample, previous: Optional[TrackPoint]) -> bool:
        return self.evaluate(sample, previous).accepted

    @staticmethod
    def _reject(reason: RejectReason, sample: GeoSample) -> FilterResult:
        logger.debug("Rejected sample at %s: %s", sample.timestamp.isoformat(), reason.value)
        return FilterResult(accepted=False, reason=reason)
