"""Exceptions raised by the anomaly engine.

Only hard failures are modelled here. Insufficient history and degenerate
series (zero variance, zero range) are normal outcomes and never raise.
"""

from __future__ import annotations


class AnomalyError(Exception):
    """Base class for anomaly engine errors."""


class EmptyInputError(AnomalyError, ValueError):
    """Raised when a statistic is requested over an empty sequence."""


class MalformedInputError(AnomalyError, ValueError):
    """Raised when a required price/volume field is missing or not a finite number.

    Attributes:
        field: Dotted path of the offending field (e.g. "current.price",
            "history[3].volume")
    """

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is missing or not a finite number")
