"""pgkmers: allele-diagnostic unique k-mers and copy-number likelihoods for a variant panel.

The library entry point is :class:`pgkmers.computer.UniqueKmerComputer`; the CLI wraps it:

    pgkmers compute --reference ref.fa --vcf panel.vcf.gz --reads reads.fq.gz --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
