"""
Status Mapper - remote status text to board column.

Mapping is an ordered list of (predicate, column) rules; the first rule
whose predicate accepts the input wins. The default rule set is:

1. Exact match against the known (bilingual) Jira status labels.
2. User overrides (``status_map_<status>`` settings), when supplied.
3. Case-insensitive keyword fragments, in a fixed order.

Anything left over falls back to the triage column with a warning. The
mapper never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from ..constants import STATUS_MAP_PREFIX
from .enums import Column


EXACT_STATUS_MAP: dict[str, Column] = {
    "Funnel 漏斗": Column.FUNNEL,
    "Defining 定义": Column.DEFINING,
    "Ready 就绪": Column.READY,
    "To Do 待办": Column.TODO,
    "Open 打开": Column.TODO,
    "Building 构建中": Column.EXECUTION,
    "In Progress 处理中": Column.EXECUTION,
    "Build Done 构建完成": Column.EXECUTED,
    "In Review 审核中": Column.TESTING_REVIEW,
    "Testing 测试中": Column.TESTING_REVIEW,
    "Integrating & Testing 集成测试中": Column.TESTING_REVIEW,
    "Test Done 测试完成": Column.TEST_DONE,
    "Validating 验证": Column.VALIDATING,
    "Validating 验证中": Column.VALIDATING,
    "Resolved 已解决": Column.RESOLVED,
    "Done 完成": Column.DONE,
    "Closed 关闭": Column.CLOSED,
}

# Order matters: "test done" must be tried before "done", "build done"
# before "done" as well, and so on.
KEYWORD_FRAGMENTS: tuple[tuple[str, Column], ...] = (
    ("funnel", Column.FUNNEL),
    ("defining", Column.DEFINING),
    ("ready", Column.READY),
    ("to do", Column.TODO),
    ("open", Column.TODO),
    ("building", Column.EXECUTION),
    ("in progress", Column.EXECUTION),
    ("build done", Column.EXECUTED),
    ("executed", Column.EXECUTED),
    ("in review", Column.TESTING_REVIEW),
    ("testing", Column.TESTING_REVIEW),
    ("integrating", Column.TESTING_REVIEW),
    ("test done", Column.TEST_DONE),
    ("validating", Column.VALIDATING),
    ("resolved", Column.RESOLVED),
    ("done", Column.DONE),
    ("closed", Column.CLOSED),
    ("漏斗", Column.FUNNEL),
    ("定义", Column.DEFINING),
    ("就绪", Column.READY),
    ("待办", Column.TODO),
    ("构建中", Column.EXECUTION),
    ("处理中", Column.EXECUTION),
    ("开始任务", Column.EXECUTION),
    ("构建完成", Column.EXECUTED),
    ("审核中", Column.TESTING_REVIEW),
    ("测试中", Column.TESTING_REVIEW),
    ("集成测试", Column.TESTING_REVIEW),
    ("测试完成", Column.TEST_DONE),
    ("验证", Column.VALIDATING),
    ("已解决", Column.RESOLVED),
    ("完成", Column.DONE),
    ("关闭", Column.CLOSED),
)


@dataclass(frozen=True)
class MappingRule:
    """A single pure predicate/result pair."""

    name: str
    predicate: Callable[[str], bool]
    column: Column

    def matches(self, status: str) -> bool:
        return self.predicate(status)


def exact_rules(table: Mapping[str, Column] = EXACT_STATUS_MAP) -> list[MappingRule]:
    """One rule per exact status label."""
    return [
        MappingRule(name=f"exact:{label}", predicate=lambda s, label=label: s == label, column=column)
        for label, column in table.items()
    ]


def keyword_rules(
    fragments: Iterable[tuple[str, Column]] = KEYWORD_FRAGMENTS,
) -> list[MappingRule]:
    """One rule per keyword fragment, matched against the lower-cased status."""
    return [
        MappingRule(
            name=f"keyword:{fragment}",
            predicate=lambda s, fragment=fragment: fragment in s.lower(),
            column=column,
        )
        for fragment, column in fragments
    ]


def override_rules(settings: Mapping[str, str]) -> list[MappingRule]:
    """
    Build rules from ``status_map_<lower-cased status>`` settings.

    Overrides naming a column outside the board are skipped.
    """
    logger = logging.getLogger("StatusMapper")
    rules: list[MappingRule] = []
    for key, value in settings.items():
        if not key.startswith(STATUS_MAP_PREFIX):
            continue
        status = key[len(STATUS_MAP_PREFIX):]
        column = Column.from_value(value)
        if column is None:
            logger.warning(f"Ignoring status override {key!r}: unknown column {value!r}")
            continue
        rules.append(
            MappingRule(
                name=f"override:{status}",
                predicate=lambda s, status=status: s.strip().lower() == status,
                column=column,
            )
        )
    return rules


class StatusMapper:
    """
    Ordered rule list with a triage fallback.

    New remote vocabularies are added as rules, not code paths.
    """

    def __init__(
        self,
        rules: Iterable[MappingRule] | None = None,
        fallback: Column = Column.TODO,
    ):
        self.rules: list[MappingRule] = (
            list(rules) if rules is not None else exact_rules() + keyword_rules()
        )
        self.fallback = fallback
        self.logger = logging.getLogger("StatusMapper")

    @classmethod
    def with_overrides(cls, settings: Mapping[str, str]) -> StatusMapper:
        """Default rules with user overrides slotted in before keyword matching."""
        return cls(exact_rules() + override_rules(settings) + keyword_rules())

    def resolve(self, status: str | None) -> Column | None:
        """Column for the first matching rule, or None. Never logs."""
        if status:
            for rule in self.rules:
                if rule.matches(status):
                    return rule.column
        return None

    def map(self, status: str | None) -> Column:
        """
        Map a remote status string to a column.

        Args:
            status: Remote status name, e.g. 'In Progress 处理中'.

        Returns:
            The matching column, or the fallback column.
        """
        column = self.resolve(status)
        if column is not None:
            return column

        self.logger.warning(f"Unknown status {status!r}, defaulting to {self.fallback.value}")
        return self.fallback

    __call__ = map


_default_mapper = StatusMapper()


def map_status(status: str | None) -> Column:
    """Map a remote status string using the default rule set."""
    return _default_mapper.map(status)
