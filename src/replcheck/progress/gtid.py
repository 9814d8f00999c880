"""
GTID set algebra: parse, union, and measure per-node replication progress.

A stopped group replication cluster cannot restart itself. Someone has to
visit every node, read the set of transactions it has applied plus the set
it has received but not yet applied, and pick the node that knows about the
most transactions as the seed of a new group. This module is that
arithmetic.

A GTID set maps a source server id to the transaction sequence numbers
originating there::

    3E11FA47-71CA-11E1-9E33-C80AA9429562:1-3:11:47-49, 24DA167-...:1-19

Sets are held in minimal form: per server, sorted ranges that neither
overlap nor touch. ``1-5`` and ``6-10`` are stored as ``1-10``, so two sets
describing the same transactions always compare equal.

Manifesto:
    - **Value objects:** ProgressSet is immutable and compares by content
    - **Join semilattice:** union is commutative, associative, idempotent
    - **Strict input:** text that does not match the grammar is fatal

Examples:
    >>> s = parse("foo:3-5:1, bar:4")
    >>> s.to_pairs()
    {'bar': [[4, 4]], 'foo': [[1, 1], [3, 5]]}
    >>> cardinality(s)
    5
    >>> str(union(s, parse("foo:2")))
    'bar:4, foo:1-5'

Tags:
    gtid, replication, group-replication, semilattice, recovery, replcheck

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from functools import reduce

from replcheck.core.errors import MalformedInputError

_RANGE_RE = re.compile(r"([0-9]+)(?:-([0-9]+))?")


@dataclass(frozen=True, slots=True, order=True)
class ProgressRange:
    """Closed interval ``[lower, upper]`` of transaction sequence numbers."""

    lower: int
    upper: int

    def __post_init__(self) -> None:
        if self.lower > self.upper:
            raise MalformedInputError(
                f"Range lower bound {self.lower} exceeds upper bound {self.upper}"
            )

    @property
    def size(self) -> int:
        return self.upper - self.lower + 1

    def touches(self, other: ProgressRange) -> bool:
        """True if the two ranges overlap or are adjacent."""
        return other.lower <= self.upper + 1 and self.lower <= other.upper + 1

    def __str__(self) -> str:
        if self.lower == self.upper:
            return str(self.lower)
        return f"{self.lower}-{self.upper}"


def coalesce(ranges: Iterable[ProgressRange]) -> tuple[ProgressRange, ...]:
    """Sort ``ranges`` and merge any that overlap or touch."""
    merged: list[ProgressRange] = []
    for r in sorted(ranges):
        if merged and merged[-1].touches(r):
            last = merged[-1]
            merged[-1] = ProgressRange(last.lower, max(last.upper, r.upper))
        else:
            merged.append(r)
    return tuple(merged)


class ProgressSet(Mapping[str, tuple[ProgressRange, ...]]):
    """
    Immutable mapping of server id to minimal, sorted ranges.

    Servers with no ranges are not stored, so ``ProgressSet({"a": []})``
    equals the empty set.
    """

    __slots__ = ("_ranges",)

    def __init__(self, ranges: Mapping[str, Iterable[ProgressRange]] | None = None):
        normalized: dict[str, tuple[ProgressRange, ...]] = {}
        for server, server_ranges in (ranges or {}).items():
            merged = coalesce(server_ranges)
            if merged:
                normalized[server] = merged
        self._ranges = normalized

    @classmethod
    def from_pairs(cls, pairs: Mapping[str, Iterable[tuple[int, int]]]) -> ProgressSet:
        """Build from ``{server: [(lower, upper), ...]}``."""
        return cls(
            {server: [ProgressRange(lo, hi) for lo, hi in ps] for server, ps in pairs.items()}
        )

    def __getitem__(self, server: str) -> tuple[ProgressRange, ...]:
        return self._ranges[server]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ranges))

    def __len__(self) -> int:
        return len(self._ranges)

    def __hash__(self) -> int:
        return hash(frozenset(self._ranges.items()))

    def union(self, other: ProgressSet) -> ProgressSet:
        merged = {server: list(rs) for server, rs in self._ranges.items()}
        for server, rs in other.items():
            merged.setdefault(server, []).extend(rs)
        return ProgressSet(merged)

    __or__ = union

    def cardinality(self) -> int:
        return sum(r.size for rs in self._ranges.values() for r in rs)

    def to_pairs(self) -> dict[str, list[list[int]]]:
        """Plain-data form: ``{server: [[lower, upper], ...]}``."""
        return {server: [[r.lower, r.upper] for r in self[server]] for server in self}

    def __str__(self) -> str:
        return ", ".join(
            ":".join([server, *(str(r) for r in self[server])]) for server in self
        )

    def __repr__(self) -> str:
        return f"ProgressSet({str(self)!r})"


EMPTY = ProgressSet()


def _parse_range(token: str) -> ProgressRange:
    m = _RANGE_RE.fullmatch(token)
    if m is None:
        raise MalformedInputError(f"Expected a txn range, got {token!r}", text=token)
    lower = int(m.group(1))
    upper = int(m.group(2)) if m.group(2) is not None else lower
    if lower > upper:
        raise MalformedInputError(f"Expected a txn range, got {token!r}", text=token)
    return ProgressRange(lower, upper)


def parse(text: str) -> ProgressSet:
    """
    Parse GTID set text into a :class:`ProgressSet`.

    Clauses are comma separated (MySQL also inserts newlines); each is a
    server id followed by one or more ``:``-separated ranges ``N`` or
    ``N-M``. A clause with no ranges is dropped. Anything else raises
    :class:`MalformedInputError`.
    """
    ranges: dict[str, list[ProgressRange]] = {}
    for clause in text.split(","):
        server, *tokens = (part.strip() for part in clause.split(":"))
        if not tokens:
            continue
        if not server:
            raise MalformedInputError(f"Missing server id in {clause.strip()!r}", text=text)
        ranges.setdefault(server, []).extend(_parse_range(t) for t in tokens)
    return ProgressSet(ranges)


def union(*sets: ProgressSet) -> ProgressSet:
    """Union any number of progress sets. ``union()`` is the empty set."""
    return reduce(ProgressSet.union, sets, EMPTY)


def cardinality(progress: ProgressSet) -> int:
    """Total number of distinct transactions in ``progress``."""
    return progress.cardinality()


def most_recent_node(progress_by_node: Mapping[str, ProgressSet]) -> str | None:
    """
    Return the node whose progress set has the largest cardinality.

    "Most recent" means "knows about the most transactions", not "holds the
    highest sequence numbers": ``{"n1": foo:10-12, "n2": foo:1-8}`` picks
    ``n2``. Equal cardinalities go to the lexicographically smallest node
    id. An empty mapping returns None.
    """
    best: str | None = None
    best_card = -1
    for node in sorted(progress_by_node):
        card = cardinality(progress_by_node[node])
        if card > best_card:
            best, best_card = node, card
    return best


__all__ = [
    "ProgressRange",
    "ProgressSet",
    "EMPTY",
    "coalesce",
    "parse",
    "union",
    "cardinality",
    "most_recent_node",
]
