"""
Dependency resolver — orders rules by their ``after:`` clauses.

Pure: no I/O. Checks, in order:
- Duplicate explicit ids
- ``after:`` tokens that match no rule (or more than one)
- Cycles (Kahn's algorithm)

Ordering is stable: among rules whose dependencies are satisfied, the
one declared first goes first, so a given blueprint always produces the
same plan.
"""

from __future__ import annotations

import heapq
from collections.abc import Sequence

from blueprint.core.errors import (
    AmbiguousDependencyError,
    DependencyCycleError,
    DuplicateIdError,
    UnknownDependencyError,
)
from blueprint.core.models.rule import Rule


def resolve(rules: Sequence[Rule]) -> list[Rule]:
    """Return ``rules`` in dependency order.

    Raises:
        DependencyError: On duplicate ids, unknown or ambiguous
            references, or a cycle. No partial order is returned.
    """
    deps = dependency_edges(rules)

    in_degree = [len(d) for d in deps]
    dependents: list[list[int]] = [[] for _ in rules]
    for i, rule_deps in enumerate(deps):
        for dep in rule_deps:
            dependents[dep].append(i)

    ready = [i for i, degree in enumerate(in_degree) if degree == 0]
    heapq.heapify(ready)
    order: list[int] = []

    while ready:
        i = heapq.heappop(ready)
        order.append(i)
        for dependent in dependents[i]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) < len(rules):
        done = set(order)
        members = [rules[i].dependency_key for i in range(len(rules)) if i not in done]
        raise DependencyCycleError(members)

    return [rules[i] for i in order]


def dependency_edges(rules: Sequence[Rule]) -> list[set[int]]:
    """For each rule position, the positions of the rules it runs after."""
    _check_duplicate_ids(rules)

    ids = {rule.id: i for i, rule in enumerate(rules) if rule.id}
    edges: list[set[int]] = []
    for rule in rules:
        edges.append({_lookup(token, rule, rules, ids) for token in rule.after})
    return edges


def _check_duplicate_ids(rules: Sequence[Rule]) -> None:
    seen: set[str] = set()
    for rule in rules:
        if not rule.id:
            continue
        if rule.id in seen:
            raise DuplicateIdError(rule.id)
        seen.add(rule.id)


def _lookup(token: str, owner: Rule, rules: Sequence[Rule], ids: dict[str, int]) -> int:
    """Find the rule an ``after:`` token names.

    Explicit ids win, then dependency keys, then any package declared
    by an install rule.
    """
    if token in ids:
        return ids[token]

    for matches in (
        [i for i, r in enumerate(rules) if r.dependency_key == token],
        [
            i
            for i, r in enumerate(rules)
            if r.kind == "install" and token in r.package_names()
        ],
    ):
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise AmbiguousDependencyError(
                token, [f"{rules[i].kind}#{i + 1}" for i in matches]
            )

    raise UnknownDependencyError(token, owner.dependency_key)
