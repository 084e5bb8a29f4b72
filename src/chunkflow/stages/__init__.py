"""Stream stages: sources, transforms, fan-in and sinks.

Sources:    from_iterable, interval
Transforms: compact, map, filter, tap, batch, flatten, take, skip, flat_map, scan, reduce, append
Fan-in:     merge
Sinks:      to_array
"""

from .combine import merge
from .sinks import to_array
from .sources import from_iterable, interval
from .transforms import (
    Append,
    Batch,
    Compact,
    Filter,
    Flatten,
    Map,
    Reduce,
    Scan,
    Skip,
    Take,
    Tap,
    append,
    batch,
    compact,
    filter,
    flat_map,
    flatten,
    map,
    reduce,
    scan,
    skip,
    take,
    tap,
)

__all__ = [
    # Sources
    "from_iterable", "interval",
    # Transforms
    "compact", "map", "filter", "tap", "batch", "flatten", "take", "skip",
    "flat_map", "scan", "reduce", "append",
    "Compact", "Map", "Filter", "Tap", "Batch", "Flatten", "Take", "Skip", "Scan", "Reduce", "Append",
    # Fan-in
    "merge",
    # Sinks
    "to_array",
]
