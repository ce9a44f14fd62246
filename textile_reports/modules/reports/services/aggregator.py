"""
Decimal group-by aggregation for report builders.

Summation is exact Decimal arithmetic, so aggregating any partition of the
records and merging the partials gives the same result as a single pass.
No rounding happens here.
"""

from concurrent.futures import Executor
from decimal import Decimal
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence

Measure = Callable[[Any], Decimal]
Partial = Dict[Hashable, Dict[str, Decimal]]

_ONE = Decimal(1)


def COUNT(record) -> Decimal:
    """Measure that counts records"""
    return _ONE


def aggregate(
    records: Iterable[Any],
    key_fn: Callable[[Any], Hashable],
    measures: Mapping[str, Measure],
) -> Partial:
    """Group records by key_fn and sum every measure per group"""
    groups: Partial = {}
    for record in records:
        key = key_fn(record)
        totals = groups.get(key)
        if totals is None:
            totals = {name: Decimal(0) for name in measures}
            groups[key] = totals
        for name, measure in measures.items():
            totals[name] += measure(record)
    return groups


def merge(*partials: Partial) -> Partial:
    """Combine partial aggregates by summing measures per group key"""
    merged: Partial = {}
    for partial in partials:
        for key, totals in partial.items():
            target = merged.get(key)
            if target is None:
                merged[key] = dict(totals)
                continue
            for name, value in totals.items():
                target[name] = target.get(name, Decimal(0)) + value
    return merged


def split(records: Sequence[Any], shards: int) -> List[Sequence[Any]]:
    """Split records into at most ``shards`` contiguous chunks"""
    shards = max(1, shards)
    size = -(-len(records) // shards) if records else 0
    if size == 0:
        return [records]
    return [records[i:i + size] for i in range(0, len(records), size)]


def aggregate_sharded(
    records: Sequence[Any],
    key_fn: Callable[[Any], Hashable],
    measures: Mapping[str, Measure],
    shards: int = 1,
    executor: Optional[Executor] = None,
) -> Partial:
    """
    Aggregate shards independently (in parallel when an executor is given)
    and merge the partial results.
    """
    chunks = split(list(records), shards)
    if executor is None or len(chunks) == 1:
        return merge(*(aggregate(chunk, key_fn, measures) for chunk in chunks))
    futures = [executor.submit(aggregate, chunk, key_fn, measures) for chunk in chunks]
    return merge(*(future.result() for future in futures))


def totals(partial: Partial, measures: Iterable[str]) -> Dict[str, Decimal]:
    """Grand totals over all groups of a partial"""
    result = {name: Decimal(0) for name in measures}
    for group in partial.values():
        for name in result:
            result[name] += group.get(name, Decimal(0))
    return result
