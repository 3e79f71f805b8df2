"""Tests for the test case filter builder."""
from collection.rql import build_rql_filter


class TestBuildRqlFilter:
    def test_empty(self):
        assert build_rql_filter() == ''

    def test_explicit_filter_wins(self):
        assert build_rql_filter(suite_id=5, filter='custom = 1') == 'custom = 1'

    def test_single_automation_state(self):
        assert build_rql_filter(automation_state=3) == 'automationState.id = 3'
        assert build_rql_filter(automation_state='Automated') == "automationState.name = 'Automated'"

    def test_automation_state_lists(self):
        assert build_rql_filter(automation_state=[1, 2]) == 'automationState.id IN [1, 2]'
        assert build_rql_filter(automation_state=['Manual']) == "automationState.name IN ['Manual']"
        assert build_rql_filter(automation_state=[1, 'Manual']) == (
            "(automationState.id IN [1] OR automationState.name IN ['Manual'])"
        )
        assert build_rql_filter(automation_state=[]) == ''

    def test_quotes_are_escaped(self):
        assert build_rql_filter(priority="It's high") == "priority.name = 'It\\'s high'"

    def test_combined(self):
        expression = build_rql_filter(
            created_after='2024-01-01',
            modified_before='2024-02-01',
            suite_id=12,
            priority=2
        )
        assert expression == (
            "createdAt >= '2024-01-01' AND lastModifiedAt <= '2024-02-01' "
            "AND testSuite.id = 12 AND priority.id = 2"
        )
