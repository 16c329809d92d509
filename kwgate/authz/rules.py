"""Pattern rules and the matcher shared by the namespace and workload checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Pattern, Sequence, Tuple

CATCH_ALL = ".*"


@dataclass(frozen=True)
class PatternRule:
    """
    A pair of compiled pattern sequences.

    A rule matches when SOME workload pattern and SOME identity pattern succeed together;
    indices of the two sequences are unrelated.
    """

    workload_patterns: Tuple[Pattern[str], ...]
    identity_patterns: Tuple[Pattern[str], ...]

    def __post_init__(self) -> None:
        if not self.workload_patterns or not self.identity_patterns:
            raise ValueError("PatternRule requires at least one workload pattern and one identity pattern")


def compile_patterns(exprs: Iterable[str]) -> Tuple[Pattern[str], ...]:
    """Compile regex strings; raises re.error / TypeError on bad input."""
    out = []
    for expr in exprs:
        if not isinstance(expr, str):
            raise TypeError(f"pattern must be a string, got {type(expr).__name__}: {expr!r}")
        out.append(re.compile(expr))
    return tuple(out)


def build_rule(workloads: Sequence[str] | None = None, identities: Sequence[str] | None = None) -> PatternRule:
    """Build a rule from raw strings. A missing (None) side defaults to a catch-all; an empty one is rejected."""
    return PatternRule(
        workload_patterns=compile_patterns([CATCH_ALL] if workloads is None else workloads),
        identity_patterns=compile_patterns([CATCH_ALL] if identities is None else identities),
    )


def catch_all_rule() -> PatternRule:
    return build_rule()


def rule_matches(rule: PatternRule, workload_name: str, identity_ref: str, group_refs: Iterable[str]) -> bool:
    """
    Does the caller (directly, or through any group) satisfy `rule` for `workload_name`?

    Patterns use search semantics (not anchored). The identity ref is lowercased before
    matching; group refs are matched as given.
    """
    ref = (identity_ref or "").lower()
    groups = list(group_refs or ())
    for workload_pattern in rule.workload_patterns:
        if not workload_pattern.search(workload_name):
            continue
        for identity_pattern in rule.identity_patterns:
            if identity_pattern.search(ref):
                return True
            if any(identity_pattern.search(g) for g in groups):
                return True
    return False


def any_rule_matches(
    rules: Iterable[PatternRule], workload_name: str, identity_ref: str, group_refs: Iterable[str]
) -> bool:
    groups = list(group_refs or ())
    return any(rule_matches(r, workload_name, identity_ref, groups) for r in rules)
