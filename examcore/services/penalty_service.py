"""
Late-Penalty Calculator
"""
import math
from datetime import datetime
from typing import Optional

from examcore.domain import LatePenalty, PenaltyKind


class PenaltyService:
    """Deterministic deductions for submissions past the deadline"""

    # (upper bound in minutes late, kind, amount); the last tier is open-ended
    PENALTY_TIERS = (
        (30, PenaltyKind.FIXED_POINTS, 0.5),
        (60, PenaltyKind.FIXED_POINTS, 2.0),
        (None, PenaltyKind.PERCENTAGE, 50.0),
    )

    @classmethod
    def minutes_late(cls, deadline: datetime, submitted_at: datetime) -> int:
        """Whole minutes between deadline and submission (0 if on time)"""
        seconds = (submitted_at - deadline).total_seconds()
        if seconds <= 0:
            return 0
        return int(math.floor(seconds / 60))

    @classmethod
    def calculate(cls, deadline: Optional[datetime], submitted_at: datetime) -> Optional[LatePenalty]:
        """
        Compute the late penalty for a submission

        Args:
            deadline: Assessment deadline (None means no deadline)
            submitted_at: Moment the submission was initiated

        Returns:
            LatePenalty, or None when on time or late by under one minute
        """
        if deadline is None:
            return None

        minutes = cls.minutes_late(deadline, submitted_at)
        if minutes <= 0:
            return None

        for upper, kind, amount in cls.PENALTY_TIERS:
            if upper is None or minutes <= upper:
                return LatePenalty(
                    minutes_late=minutes,
                    kind=kind,
                    amount=amount,
                    note=cls.describe(minutes, kind, amount)
                )
        return None

    @staticmethod
    def describe(minutes: int, kind: PenaltyKind, amount: float) -> str:
        if kind is PenaltyKind.PERCENTAGE:
            hours, mins = divmod(minutes, 60)
            hour_label = 'hour' if hours == 1 else 'hours'
            minute_label = 'minute' if mins == 1 else 'minutes'
            deduction = 'half of the score' if amount == 50 else f"{amount:g}% of the score"
            return f"Submitted {hours} {hour_label} {mins} {minute_label} late, {deduction} deducted."

        minute_label = 'minute' if minutes == 1 else 'minutes'
        point_label = 'point' if amount == 1 else 'points'
        return f"Submitted {minutes} {minute_label} late, {amount:g} {point_label} deducted."


def calculate_penalty(deadline: Optional[datetime], submitted_at: datetime) -> Optional[LatePenalty]:
    return PenaltyService.calculate(deadline, submitted_at)
