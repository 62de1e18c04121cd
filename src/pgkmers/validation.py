from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

import pysam

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def ensure_fasta_index(fasta_path: str | Path) -> None:
    """Create the .fai index of a reference FASTA if it is missing."""
    fasta = Path(fasta_path)
    fai = fasta.with_suffix(fasta.suffix + ".fai")
    if fai.exists():
        return
    logger.info("Indexing reference FASTA: %s", fasta)
    pysam.faidx(str(fasta))


def check_vcf_index(vcf_path: str | Path) -> None:
    """Note unindexed panels; they are read sequentially."""
    vcf = Path(vcf_path)
    if vcf.suffixes[-2:] == [".vcf", ".gz"]:
        tbi = vcf.with_suffix(vcf.suffix + ".tbi")
        csi = vcf.with_suffix(vcf.suffix + ".csi")
        if not tbi.exists() and not csi.exists():
            logger.info("Panel VCF has no tabix index; reading it sequentially: %s", vcf)
    elif vcf.suffix == ".vcf":
        logger.info(
            "Panel VCF is uncompressed (.vcf). This is supported but slower; "
            "consider bgzip+tabix for large panels."
        )


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def check_contigs(vcf_path: str | Path, fasta_path: str | Path) -> List[str]:
    """Return the panel contigs present in the reference; raise if there are none."""
    with pysam.VariantFile(str(vcf_path)) as vcf:
        vcf_contigs = list(vcf.header.contigs)
    with pysam.FastaFile(str(fasta_path)) as fasta:
        ref_contigs = list(fasta.references)

    shared = [c for c in vcf_contigs if c in set(ref_contigs)]
    if vcf_contigs and not shared:
        raise ValueError(
            "Contig mismatch between panel VCF and reference "
            f"(VCF style: {detect_contig_style(vcf_contigs)}, "
            f"reference style: {detect_contig_style(ref_contigs)})."
        )
    missing = [c for c in vcf_contigs if c not in set(ref_contigs)]
    if missing:
        logger.warning("%d panel contigs are absent from the reference; their sites are skipped.", len(missing))
    return shared
