"""
Tests for remote status to column mapping.
"""

import logging

import pytest

from jiraflow.core.domain.enums import Column
from jiraflow.core.domain.status_mapping import (
    EXACT_STATUS_MAP,
    MappingRule,
    StatusMapper,
    map_status,
)


class TestExactMatches:
    """Tests for the exact (bilingual) status table."""

    @pytest.mark.parametrize(
        ("status", "column"),
        [
            ("Funnel 漏斗", Column.FUNNEL),
            ("Open 打开", Column.TODO),
            ("In Progress 处理中", Column.EXECUTION),
            ("Build Done 构建完成", Column.EXECUTED),
            ("Integrating & Testing 集成测试中", Column.TESTING_REVIEW),
            ("Test Done 测试完成", Column.TEST_DONE),
            ("Validating 验证中", Column.VALIDATING),
            ("Closed 关闭", Column.CLOSED),
        ],
    )
    def test_known_labels(self, status, column):
        """Test that known labels map to their column."""
        assert map_status(status) is column

    def test_every_table_entry(self):
        """Test that every table entry maps to the table's value."""
        for status, column in EXACT_STATUS_MAP.items():
            assert map_status(status) is column


class TestKeywordMatches:
    """Tests for keyword fragment matching."""

    def test_case_insensitive(self):
        """Test that keyword matching ignores case."""
        assert map_status("IN PROGRESS") is Column.EXECUTION
        assert map_status("Ready for dev") is Column.READY

    def test_test_done_beats_done(self):
        """Test that 'test done' is tried before 'done'."""
        assert map_status("QA Test Done") is Column.TEST_DONE

    def test_build_done_beats_done(self):
        """Test that 'build done' is tried before 'done'."""
        assert map_status("build done (ci)") is Column.EXECUTED

    def test_chinese_fragments(self):
        """Test Chinese-only status names."""
        assert map_status("开始任务") is Column.EXECUTION
        assert map_status("测试完成") is Column.TEST_DONE
        assert map_status("已完成") is Column.DONE

    def test_first_fragment_wins(self):
        """Test iteration order decides between two fragments."""
        # contains both "ready" and "done"; "ready" comes first
        assert map_status("done and ready") is Column.READY


class TestFallback:
    """Tests for unresolved statuses."""

    def test_unknown_status_defaults_to_todo(self):
        """Test that unknown statuses land in the triage column."""
        assert map_status("Waiting for customer") is Column.TODO

    def test_empty_status(self):
        """Test empty and None input."""
        assert map_status("") is Column.TODO
        assert map_status(None) is Column.TODO

    def test_fallback_is_logged(self, caplog):
        """Test that the fallback logs a warning instead of raising."""
        with caplog.at_level(logging.WARNING, logger="StatusMapper"):
            map_status("Blocked by legal")
        assert "Blocked by legal" in caplog.text

    def test_resolve_returns_none(self):
        """Test that resolve() reports no match without a fallback."""
        assert StatusMapper().resolve("Blocked") is None


class TestCustomRules:
    """Tests for rule lists and overrides."""

    def test_custom_rule_list(self):
        """Test that rules are plain data evaluated in order."""
        mapper = StatusMapper(
            rules=[MappingRule("parked", lambda s: s == "Parked", Column.FUNNEL)],
            fallback=Column.READY,
        )
        assert mapper.map("Parked") is Column.FUNNEL
        assert mapper.map("In Progress") is Column.READY

    def test_overrides_before_keywords(self):
        """Test that settings overrides win over keyword fragments."""
        mapper = StatusMapper.with_overrides({"status_map_ready for qa": "TESTING & REVIEW"})
        assert mapper.map("Ready for QA") is Column.TESTING_REVIEW
        assert mapper.map("Ready") is Column.READY

    def test_overrides_do_not_beat_exact_table(self):
        """Test that the exact table is still consulted first."""
        mapper = StatusMapper.with_overrides({"status_map_done 完成": "CLOSED"})
        assert mapper.map("Done 完成") is Column.DONE

    def test_override_with_unknown_column_ignored(self):
        """Test that an override naming a bogus column is skipped."""
        mapper = StatusMapper.with_overrides({"status_map_parked": "LIMBO"})
        assert mapper.map("parked") is Column.TODO

    def test_callable(self):
        """Test that a mapper can be used as a function."""
        assert StatusMapper()("Resolved 已解决") is Column.RESOLVED
