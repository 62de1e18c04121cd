from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Tuple

import pysam

from .utils import ensure_outdir, write_json

_READ_LENGTH = 60


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _haplotype(ref_seq: str, sites: List[Tuple[int, str, List[str]]], alleles: List[int]) -> str:
    """Apply one allele per site (0 = REF) to the reference."""
    out: List[str] = []
    prev = 0
    for (pos0, ref, alts), a in zip(sites, alleles):
        out.append(ref_seq[prev:pos0])
        out.append(ref if a == 0 else alts[a - 1])
        prev = pos0 + len(ref)
    out.append(ref_seq[prev:])
    return "".join(out)


def make_toy_data(*, outdir: str | Path, depth: int = 30, kmer_size: int = 15) -> Dict[str, object]:
    """Create a tiny reference, phased panel VCF, and sample reads for quick demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - panel.vcf.gz (+ .tbi), three phased samples
    - reads.fq, error-free reads of a sample heterozygous at the first site,
      homozygous ALT at the second and homozygous REF at the third

    Returns
    -------
    dict
        Paths to the generated files and the expected k-mer coverage of the reads.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(7)

    contig = "chr1"
    ref_seq = "".join(rng.choice("ACGT") for _ in range(600))
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, contig, ref_seq)
    pysam.faidx(str(ref_fa))

    # (pos0, REF, ALTs): an SNV, an insertion and a multi-allelic deletion site
    sites: List[Tuple[int, str, List[str]]] = [
        (150, ref_seq[150], [_mutate_base(ref_seq[150])]),
        (300, ref_seq[300], [ref_seq[300] + "TTGCA"]),
        (450, ref_seq[450:455], [ref_seq[450], ref_seq[450:452]]),
    ]
    panel_gts: Dict[str, List[Tuple[int, int]]] = {
        "HG1": [(0, 1), (1, 0), (0, 1)],
        "HG2": [(1, 1), (0, 1), (2, 0)],
        "HG3": [(0, 0), (1, 1), (0, 0)],
    }

    vcf_path = outdir_p / "panel.vcf"
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for name in panel_gts:
        header.add_sample(name)
    header.contigs.add(contig, length=len(ref_seq))
    header.formats.add("GT", number=1, type="String", description="Phased genotype")

    with pysam.VariantFile(str(vcf_path), "w", header=header) as vcf:
        for i, (pos0, ref, alts) in enumerate(sites):
            rec = vcf.new_record(
                contig=contig,
                start=pos0,
                stop=pos0 + len(ref),
                alleles=(ref, *alts),
                id=f"site{i + 1}",
                qual=60,
                filter="PASS",
            )
            for name, gts in panel_gts.items():
                rec.samples[name]["GT"] = gts[i]
                rec.samples[name].phased = True
            vcf.write(rec)

    vcf_gz = outdir_p / "panel.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    # sample genome: 0/1, 1/1, 0/0
    haplotypes = [
        _haplotype(ref_seq, sites, [0, 1, 0]),
        _haplotype(ref_seq, sites, [1, 1, 0]),
    ]
    reads_fq = outdir_p / "reads.fq"
    lines: List[str] = []
    n = 0
    for hap in haplotypes:
        nr_reads = depth * len(hap) // (2 * _READ_LENGTH)
        for _ in range(nr_reads):
            start0 = rng.randint(0, len(hap) - _READ_LENGTH)
            seq = hap[start0 : start0 + _READ_LENGTH]
            lines += [f"@read{n}", seq, "+", "I" * len(seq)]
            n += 1
    reads_fq.write_text("\n".join(lines) + "\n", encoding="utf-8")

    kmer_coverage = depth * (_READ_LENGTH - kmer_size + 1) / _READ_LENGTH

    summary: Dict[str, object] = {
        "ref_fa": str(ref_fa),
        "panel_vcf": str(vcf_gz),
        "reads_fq": str(reads_fq),
        "kmer_size": kmer_size,
        "kmer_coverage": kmer_coverage,
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
