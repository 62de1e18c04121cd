from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .computer import UniqueKmerComputer
from .kmer_counter import KmerCounter
from .output import summarize_records, write_headers, write_records
from .toy_data import make_toy_data
from .utils import ensure_outdir, open_textmaybe_gzip, write_json
from .validation import check_contigs, check_vcf_index, ensure_fasta_index
from .variants import VariantReader, genomic_counter_for_panel


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pgkmers",
        description=(
            "pgkmers: allele-diagnostic unique k-mers and copy-number likelihoods "
            "for the sites of a phased variant panel."
        ),
    )
    p.add_argument("--version", action="version", version=f"pgkmers {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser("make-toy-data", help="Write a tiny reference, panel VCF and reads.")
    t.add_argument("--outdir", required=True, help="Output directory.")
    t.add_argument("--depth", type=int, default=30, help="Read depth of the toy sample.")
    t.add_argument("--dry-run", action="store_true", help="Only print what would be written.")

    # -----------------
    # compute
    # -----------------
    c = sub.add_parser(
        "compute",
        help="Select unique k-mers per panel site and compute copy-number likelihoods.",
    )
    c.add_argument("--reference", required=True, type=_path_exists, help="Reference FASTA.")
    c.add_argument("--vcf", required=True, type=_path_exists, help="Phased panel VCF.")
    c.add_argument(
        "--reads",
        nargs="+",
        type=_path_exists,
        help="Sample reads (FASTA/FASTQ, optionally gzipped). Not needed with --empty.",
    )
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument("--kmer-size", type=int, default=31, help="K-mer size (default: 31).")
    c.add_argument(
        "--kmer-coverage",
        type=float,
        required=True,
        help="Nominal k-mer coverage of the sample reads.",
    )
    c.add_argument(
        "--regularization",
        type=float,
        default=0.0,
        help="Blend likelihoods toward uniform by this constant (default: 0, off).",
    )
    c.add_argument(
        "--chromosome",
        action="append",
        help="Restrict to this chromosome (repeatable). Default: all panel chromosomes.",
    )
    c.add_argument(
        "--sample",
        action="append",
        help="Panel sample whose haplotypes become paths (repeatable). Default: all samples.",
    )
    c.add_argument(
        "--empty",
        action="store_true",
        help="Emit only the allele/path skeleton per site, without read evidence.",
    )
    c.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")

    for sp in (t, c):
        sp.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity.")

    return p


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    _setup_logging(args.verbose, logfile=None)
    summary = make_toy_data(outdir=outdir, depth=int(args.depth))
    print(json.dumps(summary, indent=2))
    return 0


def cmd_compute(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "compute.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("pgkmers")
    logger.info("pgkmers %s", __version__)

    try:
        if not args.empty and not args.reads:
            raise ValueError("--reads is required unless --empty is given")

        check_vcf_index(args.vcf)
        ensure_fasta_index(args.reference)
        check_contigs(args.vcf, args.reference)

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print("Planned outputs:")
            print(f"  sites.tsv.gz -> {outdir / 'sites.tsv.gz'}")
            print(f"  kmers.tsv.gz -> {outdir / 'kmers.tsv.gz'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)
        progress = not args.no_progress
        kmer_size = int(args.kmer_size)

        reader, load_stats = VariantReader.from_vcf(
            args.vcf, args.reference, kmer_size, samples=args.sample
        )
        chromosomes: List[str] = args.chromosome or reader.chromosomes()
        unknown = [c for c in chromosomes if c not in reader.variants]
        if unknown:
            raise ValueError(f"Chromosomes without panel sites: {unknown}")

        genomic = genomic_counter_for_panel(reader)
        if args.empty:
            reads = KmerCounter(kmer_size)
        else:
            reads = KmerCounter.from_fastx(args.reads, kmer_size, progress=progress)

        per_chrom: Dict[str, object] = {}
        with open_textmaybe_gzip(outdir / "sites.tsv.gz", "wt") as sites_fh, open_textmaybe_gzip(
            outdir / "kmers.tsv.gz", "wt"
        ) as kmers_fh:
            write_headers(sites_fh, kmers_fh)
            for chrom in chromosomes:
                computer = UniqueKmerComputer(genomic, reads, reader, chrom, float(args.kmer_coverage))
                if args.empty:
                    records = computer.compute_empty()
                else:
                    records = computer.compute_unique_kmers(
                        float(args.regularization), progress=progress
                    )
                write_records(chrom, records, kmer_size, sites_fh, kmers_fh)
                per_chrom[chrom] = summarize_records(records, computer.counts)

        summary = {
            "version": __version__,
            "reference": str(args.reference),
            "vcf": str(args.vcf),
            "reads": [str(r) for r in args.reads or []],
            "kmer_size": kmer_size,
            "kmer_coverage": float(args.kmer_coverage),
            "regularization": float(args.regularization),
            "empty": bool(args.empty),
            "panel": load_stats,
            "chromosomes": per_chrom,
        }
        write_json(outdir / "summary.json", summary)

        logger.info("Results written to %s", outdir)
        print(str(outdir / "summary.json"))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "compute":
        return cmd_compute(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
