from __future__ import annotations

from collections import Counter
from typing import Dict, Hashable, List, MutableMapping, Optional

from .sequence import SequenceLike, iter_kmers

# encoded k-mer -> owners (allele ids, or flank tags) it is unique within
Occurrences = Dict[int, List[Hashable]]


def unique_kmers(
    sequence: SequenceLike,
    owner: Hashable,
    kmer_size: int,
    occurrences: Optional[MutableMapping[int, List[Hashable]]] = None,
) -> MutableMapping[int, List[Hashable]]:
    """Record every k-mer occurring exactly once in ``sequence`` under ``owner``.

    ``occurrences`` is shared between calls so that several alleles (or both flanks of a
    site) accumulate into one table; a k-mer unique within two sequences ends up with
    both owners. K-mers seen two or more times within this sequence are dropped here
    only, not from the shared table.
    """
    if occurrences is None:
        occurrences = {}
    counts = Counter(iter_kmers(sequence, kmer_size))
    for kmer, n in counts.items():
        if n == 1:
            occurrences.setdefault(kmer, []).append(owner)
    return occurrences
