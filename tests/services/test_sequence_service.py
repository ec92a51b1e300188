"""Tests for SequenceService counter allocation."""

from orderflow_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_first_value_is_one(self, session):
        seq = SequenceService(session)
        assert seq.current_value("anything") is None
        assert seq.next_value("anything") == 1
        assert seq.current_value("anything") == 1

    def test_strictly_increasing(self, session):
        seq = SequenceService(session)
        values = [seq.next_value(SequenceService.WORKFLOW_HISTORY) for _ in range(5)]
        assert values == [1, 2, 3, 4, 5]

    def test_names_are_independent(self, session):
        seq = SequenceService(session)
        seq.next_value("do_number_2025")
        seq.next_value("do_number_2025")
        assert seq.next_value("do_number_2026") == 1
        assert seq.current_value("do_number_2025") == 2

    def test_do_number_sequence_name(self):
        assert SequenceService.do_number_sequence(2025) == "do_number_2025"

    def test_rollback_returns_value(self, session):
        seq = SequenceService(session)
        seq.next_value("x")
        savepoint = session.begin_nested()
        seq.next_value("x")
        savepoint.rollback()
        assert seq.current_value("x") == 1
        assert seq.next_value("x") == 2
