from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Protocol

from tqdm import tqdm

from .errors import InvalidConfiguration
from .extractor import Occurrences, unique_kmers
from .models import UniqueKmers, Variant
from .probability import CopyNumberModel, CopyNumberProbabilities
from .sequence import DnaSequence

logger = logging.getLogger(__name__)

MAX_KMERS_PER_SITE = 300
# read counts above this multiple of the nominal coverage are treated as repeats
_MAX_READ_COUNT_FACTOR = 2.0
# flanking k-mers outside [cov / f, cov * f] do not inform the local coverage
_COVERAGE_WINDOW_FACTOR = 4.0


class KmerAbundance(Protocol):
    def abundance(self, kmer: int) -> int: ...


class Panel(Protocol):
    def kmer_size(self) -> int: ...

    def site_count(self, chrom: str) -> int: ...

    def site(self, chrom: str, index: int) -> Variant: ...

    def left_overhang(self, chrom: str, index: int, length: int) -> DnaSequence: ...

    def right_overhang(self, chrom: str, index: int, length: int) -> DnaSequence: ...


def _skeleton(index: int, variant: Variant) -> UniqueKmers:
    """Per-site record holding every path and the allele it carries."""
    u = UniqueKmers(variant_id=index, variant_position=variant.start)
    for p in range(variant.nr_of_paths()):
        a = variant.allele_on_path(p)
        u.insert_empty_allele(a)
        u.insert_path(p, a)
    return u


class UniqueKmerComputer:
    """Turns panel sites and k-mer abundances into per-site copy-number evidence.

    Parameters
    ----------
    genomic_kmers:
        Genome-wide k-mer abundances (reference plus panel alleles).
    read_kmers:
        K-mer abundances of the sequenced sample.
    variants:
        Panel providing sites, allele sequences, paths and overhangs.
    chrom:
        Chromosome processed by this computer.
    kmer_coverage:
        Nominal k-mer coverage of the sample; fallback for the local estimate and the
        reference for read-count outlier filters.
    """

    def __init__(
        self,
        genomic_kmers: KmerAbundance,
        read_kmers: KmerAbundance,
        variants: Panel,
        chrom: str,
        kmer_coverage: float,
    ) -> None:
        if not math.isfinite(kmer_coverage) or kmer_coverage <= 0:
            raise InvalidConfiguration(f"kmer_coverage must be > 0, got {kmer_coverage}")
        self.genomic_kmers = genomic_kmers
        self.read_kmers = read_kmers
        self.variants = variants
        self.chrom = chrom
        self.kmer_coverage = float(kmer_coverage)
        self.kmer_size = variants.kmer_size()
        self.counts: Dict[str, int] = {}

    def _sites(self, progress: bool) -> Iterable[int]:
        it: Iterable[int] = range(self.variants.site_count(self.chrom))
        if progress:
            it = tqdm(it, unit="site", desc=f"Unique k-mers {self.chrom}")
        return it

    def compute_unique_kmers(
        self,
        regularization_const: float = 0.0,
        *,
        progress: bool = False,
    ) -> List[UniqueKmers]:
        """Build one UniqueKmers record per site, in panel order.

        regularization_const:
            If > 0, copy-number likelihoods are blended toward uniform; 0 keeps the raw
            likelihoods, which gives better downstream precision.
        """
        if not math.isfinite(regularization_const) or regularization_const < 0:
            raise InvalidConfiguration(
                f"regularization_const must be >= 0, got {regularization_const}"
            )

        self.counts = {
            "sites": 0,
            "sites_undefined_allele": 0,
            "sites_capped": 0,
            "kmers_candidate": 0,
            "kmers_not_genome_unique": 0,
            "kmers_no_path": 0,
            "kmers_all_paths": 0,
            "kmers_read_count_outlier": 0,
            "kmers_zero_likelihood": 0,
            "kmers_used": 0,
        }

        result: List[UniqueKmers] = []
        for v in self._sites(progress):
            result.append(self._compute_site(v, regularization_const))

        logger.info(
            "%s: %d sites, %d k-mers used (%d sites with undefined alleles, %d capped at %d)",
            self.chrom,
            self.counts["sites"],
            self.counts["kmers_used"],
            self.counts["sites_undefined_allele"],
            self.counts["sites_capped"],
            MAX_KMERS_PER_SITE,
        )
        return result

    def _compute_site(self, v: int, regularization_const: float) -> UniqueKmers:
        counts = self.counts
        counts["sites"] += 1

        local_coverage = self.compute_local_coverage(self.chrom, v, 2 * self.kmer_size)
        model = CopyNumberModel.for_coverage(local_coverage)

        variant = self.variants.site(self.chrom, v)
        u = _skeleton(v, variant)
        u.local_coverage = local_coverage

        occurrences: Occurrences = {}
        for a in range(variant.nr_of_alleles()):
            allele = variant.allele_sequence(a)
            if allele.contains_undefined():
                # one undefined allele disqualifies every k-mer of the site
                logger.debug("%s site %d: allele %d has undefined bases, no k-mers used", self.chrom, v, a)
                counts["sites_undefined_allele"] += 1
                occurrences.clear()
                break
            unique_kmers(allele, a, self.kmer_size, occurrences)

        nr_paths = variant.nr_of_paths()
        nr_kmers_used = 0
        for kmer, alleles in sorted(occurrences.items()):
            if nr_kmers_used >= MAX_KMERS_PER_SITE:
                counts["sites_capped"] += 1
                break
            counts["kmers_candidate"] += 1

            genomic_count = self.genomic_kmers.abundance(kmer)
            if genomic_count != len(alleles):
                counts["kmers_not_genome_unique"] += 1
                continue

            read_count = self.read_kmers.abundance(kmer)

            paths: List[int] = []
            for a in alleles:
                paths.extend(variant.paths_of_allele(a))
            if len(paths) == 0:
                counts["kmers_no_path"] += 1
                continue
            if len(paths) == nr_paths:
                counts["kmers_all_paths"] += 1
                continue

            if read_count > _MAX_READ_COUNT_FACTOR * self.kmer_coverage:
                counts["kmers_read_count_outlier"] += 1
                continue

            p_cn0, p_cn1, p_cn2 = model.probabilities(read_count)
            if p_cn0 <= 0 and p_cn1 <= 0 and p_cn2 <= 0:
                counts["kmers_zero_likelihood"] += 1
                continue

            nr_kmers_used += 1
            cn = CopyNumberProbabilities.from_likelihoods(p_cn0, p_cn1, p_cn2, regularization_const)
            u.insert_kmer(kmer, cn, alleles)

        counts["kmers_used"] += nr_kmers_used
        return u

    def compute_empty(self) -> List[UniqueKmers]:
        """Records with only the allele/path skeleton, for chromosomes without read evidence."""
        return [
            _skeleton(v, self.variants.site(self.chrom, v))
            for v in range(self.variants.site_count(self.chrom))
        ]

    def compute_local_coverage(self, chrom: str, index: int, length: int) -> float:
        """Mean read abundance of genome-unique k-mers in the overhangs of a site.

        Falls back to the nominal coverage when no flanking k-mer qualifies.
        """
        left = self.variants.left_overhang(chrom, index, length)
        right = self.variants.right_overhang(chrom, index, length)

        occurrences: Occurrences = {}
        unique_kmers(left, 0, self.kmer_size, occurrences)
        unique_kmers(right, 1, self.kmer_size, occurrences)

        lo = self.kmer_coverage / _COVERAGE_WINDOW_FACTOR
        hi = self.kmer_coverage * _COVERAGE_WINDOW_FACTOR
        total_coverage = 0.0
        total_kmers = 0
        for kmer in occurrences:
            if self.genomic_kmers.abundance(kmer) != 1:
                continue
            read_count = self.read_kmers.abundance(kmer)
            if read_count < lo or read_count > hi:
                continue
            total_coverage += read_count
            total_kmers += 1

        if total_kmers > 0 and total_coverage > 0:
            return total_coverage / total_kmers
        return self.kmer_coverage
