from typing import FrozenSet, Iterable, List, Set, Tuple

from .models import Sample


def label_set(sample: Sample) -> FrozenSet[Tuple[str, str]]:
    return frozenset(sample.labels.items())


def deduplicate(samples: Iterable[Sample]) -> List[Sample]:
    """
    Drop samples whose label mapping equals one already seen.

    The same series is returned once by the "entity is destination" query and
    once by the "entity is source" query when both ends are in scope. Equality
    is on the full label mapping (metric kind included); the first occurrence
    wins and input order is preserved.
    """
    seen: Set[FrozenSet[Tuple[str, str]]] = set()
    out: List[Sample] = []
    for sample in samples:
        key = label_set(sample)
        if key in seen:
            continue
        seen.add(key)
        out.append(sample)
    return out
