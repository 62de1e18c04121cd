import random

import pytest

from pgkmers.computer import MAX_KMERS_PER_SITE, UniqueKmerComputer
from pgkmers.errors import InvalidConfiguration, InvalidVariant
from pgkmers.kmer_counter import KmerCounter
from pgkmers.models import Variant
from pgkmers.sequence import DnaSequence, encode_kmer, iter_kmers
from pgkmers.variants import VariantReader


class ConstantCounter:
    def __init__(self, value: int) -> None:
        self.value = value

    def abundance(self, kmer: int) -> int:
        return self.value


def make_site(alleles, paths, *, start=0):
    return Variant(
        chrom="chr1",
        start=start,
        end=start + len(alleles[0]),
        alleles=tuple(DnaSequence(a) for a in alleles),
        paths=tuple(paths),
    )


def make_panel(alleles, paths, *, kmer_size=5, left="", right=""):
    ref = left + alleles[0] + right
    site = make_site(alleles, paths, start=len(left))
    return VariantReader(kmer_size, {"chr1": ref}, {"chr1": [site]})


TWO_ALLELES = ["AAAAACCCCC", "AAAAAGGGGG"]


def test_distinguishing_kmers_attached_per_allele():
    reader = make_panel(TWO_ALLELES, [0, 1])
    genomic = KmerCounter.from_sequences(TWO_ALLELES, 5)
    computer = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", kmer_coverage=10.0)

    (u,) = computer.compute_unique_kmers()

    assert u.variant_id == 0
    assert u.local_coverage == 10.0
    assert u.paths == {0: 0, 1: 1}
    assert u.allele_ids() == [0, 1]
    assert u.size() == 10

    cccc = u.kmers[encode_kmer("CCCCC")]
    gggg = u.kmers[encode_kmer("GGGGG")]
    assert cccc.alleles == frozenset({0})
    assert gggg.alleles == frozenset({1})
    assert max(cccc.probabilities.as_tuple()) > 0
    assert encode_kmer("CCCCC") in u.kmers_on_allele(0)
    assert u.paths_of_allele(1) == [1]


def test_kmer_on_all_paths_is_not_attached():
    reader = make_panel(TWO_ALLELES, [0, 1, 1, 0])
    genomic = KmerCounter.from_sequences(TWO_ALLELES, 5)
    (u,) = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", 10.0).compute_unique_kmers()
    assert encode_kmer("AAAAA") not in u.kmers
    assert encode_kmer("CCCCC") in u.kmers


def test_kmer_of_allele_without_path_is_not_attached():
    alleles = TWO_ALLELES + ["AAAAATTTTT"]
    reader = make_panel(alleles, [0, 1])
    genomic = KmerCounter.from_sequences(alleles, 5)
    computer = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", 10.0)
    (u,) = computer.compute_unique_kmers()
    assert encode_kmer("TTTTT") not in u.kmers
    assert 2 not in u.alleles
    assert computer.counts["kmers_no_path"] == 5


def test_kmer_seen_elsewhere_in_genome_is_dropped():
    reader = make_panel(TWO_ALLELES, [0, 1])
    genomic = KmerCounter.from_sequences(TWO_ALLELES + ["TTCCCCCTT"], 5)
    computer = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", 10.0)
    (u,) = computer.compute_unique_kmers()
    assert encode_kmer("CCCCC") not in u.kmers
    assert encode_kmer("GGGGG") in u.kmers
    assert computer.counts["kmers_not_genome_unique"] >= 1


def test_undefined_allele_discards_all_kmers_of_site():
    alleles = ["AAAAACCCCC", "AAAANGGGGG"]
    reader = make_panel(alleles, [0, 1])
    genomic = KmerCounter.from_sequences(alleles, 5)
    computer = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", 10.0)
    (u,) = computer.compute_unique_kmers()
    assert u.size() == 0
    assert u.allele_ids() == [0, 1]
    assert u.paths == {0: 0, 1: 1}
    assert computer.counts["sites_undefined_allele"] == 1


def test_extreme_read_counts_are_dropped():
    reader = make_panel(TWO_ALLELES, [0, 1])
    genomic = KmerCounter.from_sequences(TWO_ALLELES, 5)
    (u,) = UniqueKmerComputer(genomic, ConstantCounter(21), reader, "chr1", 10.0).compute_unique_kmers()
    assert u.size() == 0
    (u,) = UniqueKmerComputer(genomic, ConstantCounter(20), reader, "chr1", 10.0).compute_unique_kmers()
    assert u.size() == 10


def test_accepted_kmers_are_capped_per_site():
    rng = random.Random(3)
    alleles = ["".join(rng.choice("ACGT") for _ in range(400)) for _ in range(2)]
    reader = make_panel(alleles, [0, 1], kmer_size=11)
    genomic = KmerCounter.from_sequences(alleles, 11)
    computer = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", 10.0)
    (u,) = computer.compute_unique_kmers()
    assert u.size() == MAX_KMERS_PER_SITE
    assert computer.counts["sites_capped"] == 1


def test_regularization_blends_toward_uniform():
    reader = make_panel(TWO_ALLELES, [0, 1])
    genomic = KmerCounter.from_sequences(TWO_ALLELES, 5)
    computer = UniqueKmerComputer(genomic, ConstantCounter(10), reader, "chr1", 10.0)
    (raw,) = computer.compute_unique_kmers()
    (reg,) = computer.compute_unique_kmers(regularization_const=0.5)
    kmer = encode_kmer("CCCCC")
    for p, q in zip(raw.copy_number_of(kmer).as_tuple(), reg.copy_number_of(kmer).as_tuple()):
        assert abs(q - 1 / 3) < abs(p - 1 / 3)


def test_local_coverage_from_flanks():
    reader = make_panel(TWO_ALLELES, [0, 1], left="GATTACAGGT", right="CTTGACCATG")
    computer = UniqueKmerComputer(ConstantCounter(1), ConstantCounter(12), reader, "chr1", 10.0)
    assert computer.compute_local_coverage("chr1", 0, 10) == pytest.approx(12.0)


def test_local_coverage_falls_back_to_nominal():
    reader = make_panel(TWO_ALLELES, [0, 1], left="GATTACAGGT", right="CTTGACCATG")
    # no flanking k-mer is genome-unique
    computer = UniqueKmerComputer(KmerCounter(5), ConstantCounter(12), reader, "chr1", 10.0)
    assert computer.compute_local_coverage("chr1", 0, 10) == 10.0
    # read counts outside [cov/4, cov*4] are ignored
    computer = UniqueKmerComputer(ConstantCounter(1), ConstantCounter(41), reader, "chr1", 10.0)
    assert computer.compute_local_coverage("chr1", 0, 10) == 10.0
    # no overhang at all
    reader = make_panel(TWO_ALLELES, [0, 1])
    computer = UniqueKmerComputer(ConstantCounter(1), ConstantCounter(12), reader, "chr1", 10.0)
    assert computer.compute_local_coverage("chr1", 0, 10) == 10.0


def test_records_follow_panel_order():
    sites = [
        make_site(TWO_ALLELES, [0, 1], start=0),
        make_site(["CCCCCTTTTT", "CCCCCAAAAA"], [1, 0], start=30),
    ]
    reader = VariantReader(5, {"chr1": "A" * 60}, {"chr1": sites})
    computer = UniqueKmerComputer(ConstantCounter(1), ConstantCounter(10), reader, "chr1", 10.0)
    records = computer.compute_unique_kmers()
    assert [u.variant_id for u in records] == [0, 1]
    assert [u.variant_position for u in records] == [0, 30]


def test_compute_empty_has_skeleton_only():
    reader = make_panel(TWO_ALLELES, [0, 1, 1])
    computer = UniqueKmerComputer(ConstantCounter(1), ConstantCounter(10), reader, "chr1", 10.0)
    (u,) = computer.compute_empty()
    assert u.local_coverage is None
    assert u.size() == 0
    assert u.paths == {0: 0, 1: 1, 2: 1}
    assert u.alleles == {0: [], 1: []}


def test_invalid_configuration_fails_fast():
    reader = make_panel(TWO_ALLELES, [0, 1])
    with pytest.raises(InvalidConfiguration):
        UniqueKmerComputer(ConstantCounter(1), ConstantCounter(1), reader, "chr1", 0.0)
    computer = UniqueKmerComputer(ConstantCounter(1), ConstantCounter(1), reader, "chr1", 10.0)
    with pytest.raises(InvalidConfiguration):
        computer.compute_unique_kmers(regularization_const=-0.1)


def test_variant_rejects_path_to_unknown_allele():
    with pytest.raises(InvalidVariant):
        make_site(TWO_ALLELES, [0, 2])
    site = make_site(TWO_ALLELES, [0, 1, 1])
    assert site.paths_of_allele(1) == [1, 2]
    assert site.nr_of_paths() == 3


class SplitCounter:
    def __init__(self, kmers, inside: int, outside: int) -> None:
        self.kmers = set(kmers)
        self.inside = inside
        self.outside = outside

    def abundance(self, kmer: int) -> int:
        return self.inside if kmer in self.kmers else self.outside


def test_kmers_with_all_zero_likelihoods_are_dropped():
    reader = make_panel(TWO_ALLELES, [0, 1], left="GATTACAGGT", right="CTTGACCATG")
    allele_kmers = [x for a in TWO_ALLELES for x in iter_kmers(a, 5)]
    # flanks at 250, alleles at 2000: within 2x the nominal coverage but far from every state
    reads = SplitCounter(allele_kmers, inside=2000, outside=250)
    computer = UniqueKmerComputer(ConstantCounter(1), reads, reader, "chr1", 1000.0)
    (u,) = computer.compute_unique_kmers()
    assert u.local_coverage == pytest.approx(250.0)
    assert u.size() == 0
    assert computer.counts["kmers_read_count_outlier"] == 0
    assert computer.counts["kmers_zero_likelihood"] == 10
