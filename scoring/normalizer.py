"""
scoring/normalizer.py

Deterministic bounding, rounding and grading utilities shared by the
scoring modules.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_CENTS = Decimal("0.01")


class ScoreNormalizer:
    """Provides stateless normalization methods for score outputs.

    All methods are deterministic and produce bounded outputs.
    No external dependencies, state, or side effects.
    """

    def clamp(self, value: float, min_value: float, max_value: float) -> float:
        """Clamp a value to the specified [min_value, max_value] range.

        Args:
            value: The number to clamp.
            min_value: The lower bound of the output range.
            max_value: The upper bound of the output range.

        Returns:
            value if within bounds, otherwise min_value or max_value.
        """
        return max(min_value, min(value, max_value))

    def round_currency(self, value: float) -> float:
        """Round a monetary amount to two decimals, halves rounded up.

        Goes through ``Decimal(str(value))`` so binary float artefacts such
        as ``638.3999999`` do not leak into the result.

        Args:
            value: Amount to round.

        Returns:
            The amount rounded to cents.
        """
        return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))

    def grade(self, score: float, thresholds: tuple[tuple[int, str], ...]) -> str:
        """Map a score to a letter grade.

        Args:
            score: Numeric score.
            thresholds: ``(inclusive lower bound, grade)`` pairs in descending
                order.

        Returns:
            The first grade whose bound the score reaches, else ``"F"``.
        """
        for lower_bound, letter in thresholds:
            if score >= lower_bound:
                return letter
        return "F"
