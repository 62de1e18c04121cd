from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, TextIO

import numpy as np

from .models import UniqueKmers
from .sequence import decode_kmer
from .utils import format_float

logger = logging.getLogger(__name__)

SITE_COLUMNS = [
    "chrom",
    "variant_index",
    "start0",
    "local_coverage",
    "nr_alleles",
    "nr_paths",
    "nr_kmers",
]

KMER_COLUMNS = [
    "chrom",
    "variant_index",
    "kmer",
    "alleles",
    "p_cn0",
    "p_cn1",
    "p_cn2",
]


def write_headers(sites_fh: TextIO, kmers_fh: TextIO) -> None:
    sites_fh.write("\t".join(SITE_COLUMNS) + "\n")
    kmers_fh.write("\t".join(KMER_COLUMNS) + "\n")


def write_records(
    chrom: str,
    records: Sequence[UniqueKmers],
    kmer_size: int,
    sites_fh: TextIO,
    kmers_fh: TextIO,
) -> None:
    """Append one row per site and one row per attached k-mer."""
    for u in records:
        cov = "NA" if u.local_coverage is None else format_float(u.local_coverage)
        sites_fh.write(
            f"{chrom}\t{u.variant_id}\t{u.variant_position}\t{cov}\t"
            f"{len(u.alleles)}\t{len(u.paths)}\t{u.size()}\n"
        )
        for kmer, entry in u.kmers.items():
            p0, p1, p2 = entry.probabilities.as_tuple()
            alleles = ",".join(str(a) for a in sorted(entry.alleles))
            kmers_fh.write(
                f"{chrom}\t{u.variant_id}\t{decode_kmer(kmer, kmer_size)}\t{alleles}\t"
                f"{format_float(p0)}\t{format_float(p1)}\t{format_float(p2)}\n"
            )


def _histogram(values: List[float], bins: int = 20) -> Dict[str, List[float]]:
    if not values:
        return {"bin_edges": [], "counts": []}
    counts, edges = np.histogram(np.asarray(values, dtype=np.float64), bins=bins)
    return {"bin_edges": edges.tolist(), "counts": counts.tolist()}


def summarize_records(
    records: Sequence[UniqueKmers],
    counts: Optional[Dict[str, int]] = None,
) -> Dict[str, object]:
    """Per-chromosome summary: computer counters plus coverage / k-mer histograms."""
    coverages = [u.local_coverage for u in records if u.local_coverage is not None]
    kmers_per_site = [float(u.size()) for u in records]
    summary: Dict[str, object] = {
        "sites": len(records),
        "sites_without_kmers": sum(1 for u in records if u.size() == 0),
        "kmers_total": int(sum(u.size() for u in records)),
        "local_coverage_mean": float(np.mean(coverages)) if coverages else None,
        "local_coverage_hist": _histogram(coverages),
        "kmers_per_site_hist": _histogram(kmers_per_site),
    }
    if counts:
        summary["counts"] = dict(counts)
    return summary
