"""
Tests for balance aggregation and levels.

Tests cover:
1. points_total equals the ledger sum
2. lifetime_points ignores spending and refunds
3. Level curve
4. Bulk recompute convergence
"""
import pytest
from types import SimpleNamespace

from incentive_engine.models import Student
from incentive_engine.services.balance_service import BalanceService, aggregate_entries
from incentive_engine.services.level_service import LevelService
from incentive_engine.services.ledger_service import LedgerService
from incentive_engine.exceptions import StudentNotFoundException
from incentive_engine.tests.conftest import make_student


def entry(points, category="manual"):
    return SimpleNamespace(points=points, category=category)


class TestAggregateEntries:

    def test_total_is_sum_of_all_entries(self):
        """points_total is the plain sum of every entry"""
        balances = aggregate_entries([entry(50), entry(-20), entry(7), entry(-3)])
        assert balances.points_total == 34
        assert balances.points_balance == 34

    def test_lifetime_ignores_negative_entries(self):
        """Spending never lowers lifetime points"""
        balances = aggregate_entries([entry(100), entry(-60, "redeem")])
        assert balances.lifetime_points == 100

    def test_lifetime_ignores_refunds_and_hold_releases(self):
        """Points handed back are not counted as earnings"""
        balances = aggregate_entries([
            entry(100),
            entry(-40, "redeem_hold"),
            entry(40, "redeem_hold_release"),
            entry(-25, "redeem"),
            entry(25, "redeem_refund"),
        ])
        assert balances.points_total == 100
        assert balances.lifetime_points == 100

    def test_empty_history(self):
        """No entries means zero balances"""
        balances = aggregate_entries([])
        assert (balances.points_total, balances.lifetime_points) == (0, 0)


class TestLevelCurve:

    def test_default_thresholds(self):
        """Default curve: 50, 110, 180 for levels 2-4, up to level 99"""
        thresholds = dict(LevelService.compute_thresholds(50, 8.0))
        assert thresholds[1] == 0
        assert thresholds[2] == 50
        assert thresholds[3] == 110
        assert thresholds[4] == 180
        assert len(thresholds) == 99

    @pytest.mark.parametrize("lifetime,level", [(0, 1), (49, 1), (50, 2), (109, 2), (110, 3), (180, 4)])
    def test_level_for(self, lifetime, level):
        """Level is the highest threshold reached"""
        thresholds = LevelService.compute_thresholds(50, 8.0)
        assert LevelService.level_for(lifetime, thresholds) == level


class TestRecompute:

    def test_recompute_matches_ledger(self, db_session, default_settings):
        """Recompute writes ledger-derived balances and level"""
        student = make_student(db_session, points=120)
        LedgerService(db_session).append_ledger_entry(student.id, -30, category="redeem")

        balances = BalanceService(db_session).recompute_balances(student.id)

        assert balances.points_total == 90
        assert balances.lifetime_points == 120
        assert balances.level == 3

    def test_unknown_student(self, db_session, default_settings):
        """Missing student raises not-found"""
        with pytest.raises(StudentNotFoundException):
            BalanceService(db_session).recompute_balances(999)

    def test_recompute_all_converges_stale_rows(self, db_session, default_settings):
        """Bulk recompute fixes stale rows and is idempotent"""
        stale = make_student(db_session, name="Stale", points=60)
        make_student(db_session, name="Fresh", points=10)

        stale.points_total = 0
        stale.lifetime_points = 0
        db_session.commit()

        result = BalanceService(db_session).recompute_all()

        assert result.scanned == 2
        assert result.changed == 1
        refreshed = db_session.get(Student, stale.id)
        assert refreshed.points_total == 60
        assert refreshed.level == 2

        # Second run finds nothing to fix
        assert BalanceService(db_session).recompute_all().changed == 0
