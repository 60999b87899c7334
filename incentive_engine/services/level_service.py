"""
Level calculation from lifetime points.
"""
from typing import List, Tuple

from incentive_engine.constants import MAX_LEVEL


class LevelService:
    """Service for the level curve"""

    @staticmethod
    def compute_thresholds(base_jump: float, difficulty_pct: float) -> List[Tuple[int, int]]:
        """
        Minimum lifetime points per level.

        Level 1 starts at 0. Each further level adds
        base_jump * (1 + difficulty_pct/100)^(level-1) to a running total,
        rounded to the nearest 10.

        Returns:
            List of (level, min_lifetime_points), ascending
        """
        thresholds = [(1, 0)]
        total = 0.0
        for level in range(2, MAX_LEVEL + 1):
            total += base_jump * (1 + difficulty_pct / 100) ** (level - 1)
            rounded = int((total / 10) + 0.5) * 10
            thresholds.append((level, max(0, rounded)))
        return thresholds

    @staticmethod
    def level_for(lifetime_points: int, thresholds: List[Tuple[int, int]]) -> int:
        """Highest level whose threshold is reached (at least 1)"""
        level = 1
        for candidate, min_points in thresholds:
            if lifetime_points >= min_points:
                level = candidate
        return max(1, level)
