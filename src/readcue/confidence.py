# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Confidence smoothing for recognition results.

Recognizers report a confidence per result that jumps around between
interim updates. These predictors turn that stream into a temporally stable
value in [0, 1] that can be attached to highlight commands.
"""

import math
from collections import deque
from collections.abc import Iterable
from typing import Protocol

# Used whenever a confidence is missing or unusable
DEFAULT_CONFIDENCE: float = 0.5


def sanitize_confidence(value: object, default: float = DEFAULT_CONFIDENCE) -> float:
    """
    Coerce a raw confidence into [0, 1].

    None, NaN, infinities and non-numeric values become ``default``;
    finite numbers outside the range are clamped.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    number = float(value)
    if not math.isfinite(number):
        return default
    return min(1.0, max(0.0, number))


def raw_confidence(samples: Iterable[object] | None) -> float:
    """Average the usable confidence samples of one recognition event."""
    if not samples:
        return DEFAULT_CONFIDENCE
    valid: list[float] = []
    for sample in samples:
        if isinstance(sample, bool) or not isinstance(sample, (int, float)):
            continue
        if math.isfinite(sample):
            valid.append(sanitize_confidence(sample))
    if not valid:
        return DEFAULT_CONFIDENCE
    return sum(valid) / len(valid)


class ConfidencePredictor(Protocol):
    """Common contract for confidence smoothers."""

    def admit(self, value: object) -> float:
        """Add a raw confidence and return the smoothed value."""

    def reset(self) -> None:
        """Forget all history."""

    @property
    def value(self) -> float:
        """The current smoothed value."""


class ConfidenceSmoother:
    """Running mean over the last ``window`` confidences."""

    def __init__(self, window: int = 10, default: float = DEFAULT_CONFIDENCE) -> None:
        if window < 1:
            raise ValueError(f"window must be positive, got {window}")
        self.default: float = sanitize_confidence(default)
        self.history: deque[float] = deque(maxlen=window)

    def admit(self, value: object) -> float:
        self.history.append(sanitize_confidence(value, self.default))
        return self.value

    def reset(self) -> None:
        self.history.clear()

    @property
    def value(self) -> float:
        if not self.history:
            return self.default
        return sum(self.history) / len(self.history)


class KalmanConfidencePredictor:
    """
    Scalar Kalman filter with constant process and measurement noise.

    Drop-in alternative to ConfidenceSmoother: reacts faster to a sustained
    change while still damping single outliers.
    """

    def __init__(
        self,
        process_noise: float = 0.01,
        measurement_noise: float = 0.1,
        default: float = DEFAULT_CONFIDENCE
    ) -> None:
        self.process_noise: float = process_noise
        self.measurement_noise: float = measurement_noise
        self.default: float = sanitize_confidence(default)
        self._estimate: float | None = None
        self._uncertainty: float = 1.0

    def admit(self, value: object) -> float:
        observation = sanitize_confidence(value, self.default)
        if self._estimate is None:
            self._estimate = observation
        # Predict
        self._uncertainty += self.process_noise
        # Update
        gain = self._uncertainty / (self._uncertainty + self.measurement_noise)
        self._estimate += gain * (observation - self._estimate)
        self._uncertainty *= (1 - gain)
        return self.value

    def reset(self) -> None:
        self._estimate = None
        self._uncertainty = 1.0

    @property
    def value(self) -> float:
        if self._estimate is None:
            return self.default
        return min(1.0, max(0.0, self._estimate))
