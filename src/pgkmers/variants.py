from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import pysam

from .errors import InvalidVariant
from .kmer_counter import KmerCounter
from .models import MAX_ALLELES, Variant
from .sequence import DnaSequence, check_kmer_size

logger = logging.getLogger(__name__)

_ALLELE_ALPHABET = set("ACGTN")


class VariantReader:
    """Variant panel: ordered sites per chromosome plus the reference they sit on.

    Parameters
    ----------
    kmer_size:
        Global k for the run.
    reference:
        Contig name -> reference sequence, used for overhangs (and the genome-wide
        k-mer counts of :func:`genomic_counter_for_panel`).
    variants:
        Contig name -> sites sorted by position.
    flank_length:
        Number of reference bases each allele sequence is embedded in on either side.
        Overhangs start beyond this flank.
    """

    def __init__(
        self,
        kmer_size: int,
        reference: Mapping[str, str],
        variants: Mapping[str, Sequence[Variant]],
        *,
        flank_length: int = 0,
    ) -> None:
        check_kmer_size(kmer_size)
        self._kmer_size = kmer_size
        self.reference: Dict[str, str] = {c: s.upper() for c, s in reference.items()}
        self.variants: Dict[str, List[Variant]] = {c: list(v) for c, v in variants.items()}
        self.flank_length = flank_length
        for chrom, sites in self.variants.items():
            if chrom not in self.reference:
                raise InvalidVariant(f"Contig {chrom} has variants but no reference sequence")
            for prev, nxt in zip(sites, sites[1:]):
                # an allele flank must not cover a neighbouring site
                if nxt.start < prev.end + flank_length:
                    raise InvalidVariant(
                        f"{chrom}: sites at {prev.start} and {nxt.start} are closer than the "
                        f"{flank_length} bp allele flank; merge them into one site"
                    )

    def kmer_size(self) -> int:
        return self._kmer_size

    def chromosomes(self) -> List[str]:
        return list(self.variants)

    def site_count(self, chrom: str) -> int:
        return len(self.variants.get(chrom, []))

    def site(self, chrom: str, index: int) -> Variant:
        return self.variants[chrom][index]

    def left_overhang(self, chrom: str, index: int, length: int) -> DnaSequence:
        v = self.site(chrom, index)
        end = max(0, v.start - self.flank_length)
        return DnaSequence(self.reference[chrom][max(0, end - length) : end])

    def right_overhang(self, chrom: str, index: int, length: int) -> DnaSequence:
        v = self.site(chrom, index)
        ref = self.reference[chrom]
        start = min(len(ref), v.end + self.flank_length)
        return DnaSequence(ref[start : start + length])

    @classmethod
    def from_vcf(
        cls,
        vcf_path: str | Path,
        reference_path: str | Path,
        kmer_size: int,
        *,
        samples: Optional[Sequence[str]] = None,
    ) -> Tuple["VariantReader", Dict[str, int]]:
        """Load a phased multi-sample panel VCF on top of a reference FASTA.

        Every haplotype of every selected sample becomes one path; allele 0 is REF.
        Alleles are embedded in ``kmer_size - 1`` reference bases on each side. Records
        closer than that flank are merged into one site over the observed haplotypes.

        Returns
        -------
        reader:
            The loaded panel.
        stats:
            Simple counters about records kept/skipped.
        """
        check_kmer_size(kmer_size)
        flank = kmer_size - 1

        fasta = pysam.FastaFile(str(reference_path))
        vcf = pysam.VariantFile(str(vcf_path))

        if samples is None:
            samples = list(vcf.header.samples)
        missing = [s for s in samples if s not in vcf.header.samples]
        if missing:
            raise ValueError(f"Samples {missing} not found in VCF samples: {list(vcf.header.samples)}")
        if len(samples) == 0:
            raise ValueError("VCF has no samples. A panel VCF needs phased haplotypes to define paths.")

        stats: Dict[str, int] = {
            "records_total": 0,
            "sites_kept": 0,
            "skipped_unknown_contig": 0,
            "skipped_symbolic": 0,
            "skipped_too_many_alleles": 0,
            "skipped_overlap": 0,
            "skipped_missing_gt": 0,
            "skipped_unphased": 0,
            "skipped_ploidy_change": 0,
            "records_merged": 0,
        }

        reference: Dict[str, str] = {}
        variants: Dict[str, List[Variant]] = {}
        # records of one cluster lie within the allele flank of each other
        clusters: Dict[str, List[List[_PanelRecord]]] = {}
        last_end: Dict[str, int] = {}

        try:
            iterator = vcf.fetch()
        except (ValueError, OSError):
            iterator = vcf

        for rec in iterator:
            stats["records_total"] += 1
            chrom = str(rec.contig)
            if chrom not in fasta.references:
                stats["skipped_unknown_contig"] += 1
                continue

            alleles = [a.upper() for a in (rec.alleles or ())]
            if not alleles or any(not a or not set(a) <= _ALLELE_ALPHABET for a in alleles):
                stats["skipped_symbolic"] += 1
                continue
            if len(alleles) > MAX_ALLELES:
                stats["skipped_too_many_alleles"] += 1
                continue

            start, end = int(rec.start), int(rec.stop)
            if start < last_end.get(chrom, 0):
                stats["skipped_overlap"] += 1
                continue

            paths, reason = _paths_from_genotypes(rec, samples)
            if reason:
                stats[f"skipped_{reason}"] += 1
                continue

            rid = rec.id if rec.id is not None else f"{chrom}:{rec.pos}"
            record = _PanelRecord(start, end, alleles, paths, rid)
            chrom_clusters = clusters.setdefault(chrom, [])
            if chrom_clusters and start < chrom_clusters[-1][-1].end + flank:
                if len(paths) != len(chrom_clusters[-1][-1].paths):
                    stats["skipped_ploidy_change"] += 1
                    continue
                chrom_clusters[-1].append(record)
            else:
                chrom_clusters.append([record])
            last_end[chrom] = end

        for chrom in fasta.references:
            reference[chrom] = fasta.fetch(chrom).upper()
        fasta.close()
        vcf.close()

        for chrom, chrom_clusters in clusters.items():
            for records in chrom_clusters:
                site = _site_from_records(chrom, reference[chrom], records, flank)
                if site is None:
                    stats["skipped_too_many_alleles"] += len(records)
                    continue
                variants.setdefault(chrom, []).append(site)
                stats["sites_kept"] += 1
                if len(records) > 1:
                    stats["records_merged"] += len(records)

        if stats["records_merged"]:
            logger.info(
                "Merged %d records closer than %d bp into multi-record sites.",
                stats["records_merged"],
                flank,
            )

        if stats["skipped_overlap"]:
            logger.warning(
                "Skipped %d records overlapping a previous site; the panel should be "
                "normalized into non-overlapping sites.",
                stats["skipped_overlap"],
            )
        if stats["skipped_unphased"] or stats["skipped_missing_gt"]:
            logger.warning(
                "Skipped %d unphased and %d incompletely genotyped records.",
                stats["skipped_unphased"],
                stats["skipped_missing_gt"],
            )
        logger.info("Loaded %d sites on %d contigs from %s", stats["sites_kept"], len(variants), vcf_path)

        return cls(kmer_size, reference, variants, flank_length=flank), stats


class _PanelRecord(NamedTuple):
    start: int
    end: int
    alleles: List[str]
    paths: List[int]
    record_id: str


def _site_from_records(
    chrom: str, ref_seq: str, records: Sequence[_PanelRecord], flank: int
) -> Optional[Variant]:
    """Build one site from a cluster of records; None if it has too many alleles.

    A single record keeps its own alleles. Several records become one site whose
    alleles are the distinct haplotypes the paths carry across the cluster, with the
    all-reference haplotype as allele 0.
    """
    start, end = records[0].start, records[-1].end
    if len(records) == 1:
        cores = list(records[0].alleles)
        paths = list(records[0].paths)
    else:
        cores = [ref_seq[start:end]]
        index = {cores[0]: 0}
        paths = []
        for p in range(len(records[0].paths)):
            parts: List[str] = []
            prev = start
            for rec in records:
                parts.append(ref_seq[prev : rec.start])
                parts.append(rec.alleles[rec.paths[p]])
                prev = rec.end
            haplotype = "".join(parts)
            if haplotype not in index:
                index[haplotype] = len(cores)
                cores.append(haplotype)
            paths.append(index[haplotype])
    if len(cores) > MAX_ALLELES:
        return None

    left = ref_seq[max(0, start - flank) : start]
    right = ref_seq[end : end + flank]
    return Variant(
        chrom=chrom,
        start=start,
        end=end,
        alleles=tuple(DnaSequence(left + a + right) for a in cores),
        paths=tuple(paths),
        record_id=";".join(r.record_id for r in records),
    )


def _paths_from_genotypes(rec: pysam.VariantRecord, samples: Iterable[str]) -> Tuple[List[int], str]:
    """Allele index of every haplotype of the given samples, or a skip reason."""
    paths: List[int] = []
    for s in samples:
        sample = rec.samples[s]
        gt = sample.get("GT")
        if gt is None or len(gt) == 0 or any(a is None for a in gt):
            return [], "missing_gt"
        if len(gt) > 1 and not sample.phased:
            return [], "unphased"
        paths.extend(int(a) for a in gt)
    return paths, ""


def genomic_counter_for_panel(reader: VariantReader) -> KmerCounter:
    """Genome-wide k-mer abundances: every reference contig plus every non-REF allele.

    With this counter a k-mer specific to one site has a genome-wide abundance equal to
    the number of that site's alleles it occurs in.
    """
    counter = KmerCounter(reader.kmer_size())
    for chrom, seq in reader.reference.items():
        logger.debug("Counting reference k-mers on %s", chrom)
        counter.add_sequence(seq)
    for chrom in reader.chromosomes():
        for v in reader.variants[chrom]:
            for allele in v.alleles[1:]:
                counter.add_sequence(allele)
    logger.info("Genome-wide table holds %d distinct k-mers", len(counter))
    return counter
