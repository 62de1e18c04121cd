from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Optional

import pysam
from tqdm import tqdm

from .sequence import SequenceLike, check_kmer_size, iter_kmers

logger = logging.getLogger(__name__)


class KmerCounter:
    """In-memory k-mer abundance table.

    K-mers are counted in the orientation they are read, over windows of defined
    bases only; unseen k-mers have abundance 0. Lookups are read-only and may be
    shared between sites.
    """

    def __init__(self, kmer_size: int) -> None:
        check_kmer_size(kmer_size)
        self.kmer_size = kmer_size
        self._counts: Counter = Counter()

    def add_sequence(self, sequence: SequenceLike) -> None:
        self._counts.update(iter_kmers(sequence, self.kmer_size))

    def abundance(self, kmer: int) -> int:
        return self._counts.get(kmer, 0)

    def __len__(self) -> int:
        return len(self._counts)

    @classmethod
    def from_sequences(cls, sequences: Iterable[SequenceLike], kmer_size: int) -> "KmerCounter":
        counter = cls(kmer_size)
        for seq in sequences:
            counter.add_sequence(seq)
        return counter

    @classmethod
    def from_fastx(
        cls,
        paths: Iterable[str | Path],
        kmer_size: int,
        *,
        max_records: Optional[int] = None,
        progress: bool = False,
    ) -> "KmerCounter":
        """Count k-mers of all records in FASTA/FASTQ files (optionally gzipped)."""
        counter = cls(kmer_size)
        n_records = 0
        for path in paths:
            with pysam.FastxFile(str(path)) as fh:
                it: Iterable = fh
                if progress:
                    it = tqdm(it, unit="record", desc=f"Counting {Path(path).name}")
                for rec in it:
                    if max_records is not None and n_records >= max_records:
                        break
                    if rec.sequence:
                        counter.add_sequence(rec.sequence)
                    n_records += 1
        logger.info("Counted %d distinct %d-mers from %d records", len(counter), kmer_size, n_records)
        return counter
