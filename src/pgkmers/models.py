from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import InvalidVariant
from .probability import CopyNumberProbabilities
from .sequence import DnaSequence

MAX_ALLELES = 256


@dataclass(frozen=True)
class Variant:
    """One site of a variant panel.

    Coordinates are 0-based half-open on the reference.

    Attributes
    ----------
    chrom:
        Contig name.
    start, end:
        Reference span of the site (REF allele), excluding any embedding flanks.
    alleles:
        Allele sequences indexed by allele id (0..255). Loaders may embed each allele
        in reference context so that k-mers crossing the breakpoints are enumerated.
    paths:
        Allele id carried by each path (haplotype slot), indexed by path id.
    record_id:
        Optional identifier (VCF ID or CHROM:POS).
    """

    chrom: str
    start: int
    end: int
    alleles: Tuple[DnaSequence, ...]
    paths: Tuple[int, ...]
    record_id: str = ""

    def __post_init__(self) -> None:
        if len(self.alleles) > MAX_ALLELES:
            raise InvalidVariant(
                f"{self.chrom}:{self.start}: {len(self.alleles)} alleles exceed the limit of {MAX_ALLELES}"
            )
        for p, a in enumerate(self.paths):
            if not 0 <= a < len(self.alleles):
                raise InvalidVariant(
                    f"{self.chrom}:{self.start}: path {p} refers to unknown allele {a}"
                )

    def nr_of_alleles(self) -> int:
        return len(self.alleles)

    def nr_of_paths(self) -> int:
        return len(self.paths)

    def allele_sequence(self, allele: int) -> DnaSequence:
        return self.alleles[allele]

    def allele_on_path(self, path: int) -> int:
        return self.paths[path]

    def paths_of_allele(self, allele: int) -> List[int]:
        return [p for p, a in enumerate(self.paths) if a == allele]


@dataclass
class KmerEntry:
    probabilities: CopyNumberProbabilities
    alleles: FrozenSet[int]


@dataclass
class UniqueKmers:
    """Per-site summary handed to the genotyping stage.

    ``alleles`` holds an entry for every allele id carried by some path, even when no
    informative k-mer was found for it.
    """

    variant_id: int
    variant_position: int
    local_coverage: Optional[float] = None
    alleles: Dict[int, List[int]] = field(default_factory=dict)
    paths: Dict[int, int] = field(default_factory=dict)
    kmers: Dict[int, KmerEntry] = field(default_factory=dict)

    def insert_empty_allele(self, allele: int) -> None:
        self.alleles.setdefault(allele, [])

    def insert_path(self, path: int, allele: int) -> None:
        self.paths[path] = allele

    def insert_kmer(self, kmer: int, cn: CopyNumberProbabilities, alleles: Iterable[int]) -> None:
        allele_set = frozenset(alleles)
        self.kmers[kmer] = KmerEntry(probabilities=cn, alleles=allele_set)
        for a in sorted(allele_set):
            self.alleles.setdefault(a, []).append(kmer)

    def size(self) -> int:
        return len(self.kmers)

    def allele_ids(self) -> List[int]:
        return sorted(self.alleles)

    def kmers_on_allele(self, allele: int) -> List[int]:
        return list(self.alleles.get(allele, []))

    def paths_of_allele(self, allele: int) -> List[int]:
        return [p for p, a in sorted(self.paths.items()) if a == allele]

    def copy_number_of(self, kmer: int) -> CopyNumberProbabilities:
        return self.kmers[kmer].probabilities
