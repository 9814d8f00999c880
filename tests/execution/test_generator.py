"""Tests for replcheck.execution.generator."""

import random
from collections import defaultdict

from replcheck.core.config import HarnessSettings
from replcheck.execution.generator import TransactionGenerator
from replcheck.execution.workloads import LIST_APPEND, RW_REGISTER


def _generator(**kwargs):
    kwargs.setdefault("rng", random.Random(7))
    return TransactionGenerator(LIST_APPEND, **kwargs)


class TestTransactionGenerator:
    def test_lengths_within_bounds(self):
        gen = _generator(max_txn_length=3)
        lengths = {len(gen.next_txn()) for _ in range(200)}
        assert lengths == {1, 2, 3}

    def test_write_function_follows_workload(self):
        gen = TransactionGenerator(RW_REGISTER, read_ratio=0.0, rng=random.Random(1))
        assert {m.f for m in gen.next_txn()} == {"w"}

    def test_reads_carry_no_value(self):
        gen = _generator(read_ratio=1.0)
        assert all(m.is_read and m.value is None for m in gen.next_txn())

    def test_write_values_unique_and_increasing_per_key(self):
        gen = _generator(read_ratio=0.3, max_writes_per_key=1000)
        written = defaultdict(list)
        for _ in range(300):
            for mop in gen.next_txn():
                if not mop.is_read:
                    written[mop.key].append(mop.value)
        for values in written.values():
            assert values == list(range(1, len(values) + 1))

    def test_keys_retired_after_max_writes(self):
        gen = _generator(key_count=2, read_ratio=0.0, max_writes_per_key=3)
        writes = defaultdict(int)
        for _ in range(100):
            for mop in gen.next_txn():
                writes[mop.key] += 1
        assert max(writes.values()) <= 3
        assert len(writes) > 2
        assert len(gen.active_keys) == 2
        assert all(writes[k] < 3 for k in gen.active_keys)

    def test_deterministic_with_seed(self):
        a = _generator(rng=random.Random(11))
        b = _generator(rng=random.Random(11))
        assert [a.next_txn() for _ in range(20)] == [b.next_txn() for _ in range(20)]

    def test_from_settings(self):
        settings = HarnessSettings(workload="rw-register", key_count=4, max_txn_length=2)
        gen = TransactionGenerator.from_settings(settings, rng=random.Random(0))
        assert gen.workload is RW_REGISTER
        assert gen.max_txn_length == 2
        assert gen.active_keys == [0, 1, 2, 3]
