from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from scipy import stats

from .errors import InvalidConfiguration

COPY_NUMBERS = (0, 1, 2)


def error_parameter(coverage: float) -> float:
    """Success probability of the geometric noise model used for copy number 0.

    Brackets are closed on their lower side: 10.0 already maps to 0.95.
    """
    if coverage < 10.0:
        return 0.99
    if coverage < 20.0:
        return 0.95
    if coverage < 40.0:
        return 0.90
    return 0.80


@dataclass(frozen=True)
class CoverageParameters:
    """Per-site distribution parameters derived from a local coverage estimate."""

    cn0: float
    cn1: float
    cn2: float

    @classmethod
    def from_coverage(cls, coverage: float) -> "CoverageParameters":
        if not math.isfinite(coverage) or coverage < 0:
            raise InvalidConfiguration(f"coverage must be finite and >= 0, got {coverage}")
        return cls(cn0=error_parameter(coverage), cn1=coverage / 2.0, cn2=float(coverage))


class CopyNumberModel:
    """Likelihood of an observed read k-mer count under copy numbers 0, 1 and 2.

    Instances are built per site and never reconfigured, so sites can be processed
    concurrently with one model each.
    """

    def __init__(self, params: CoverageParameters) -> None:
        self.params = params

    @classmethod
    def for_coverage(cls, coverage: float) -> "CopyNumberModel":
        return cls(CoverageParameters.from_coverage(coverage))

    def probability(self, copy_number: int, read_count: int) -> float:
        if read_count < 0:
            raise InvalidConfiguration(f"read_count must be >= 0, got {read_count}")
        if copy_number == 0:
            # scipy's geometric distribution counts trials, not failures
            return float(stats.geom.pmf(read_count + 1, self.params.cn0))
        if copy_number == 1:
            return float(stats.poisson.pmf(read_count, self.params.cn1))
        if copy_number == 2:
            return float(stats.poisson.pmf(read_count, self.params.cn2))
        raise InvalidConfiguration(f"copy number must be one of {COPY_NUMBERS}, got {copy_number}")

    def probabilities(self, read_count: int) -> Tuple[float, float, float]:
        return (
            self.probability(0, read_count),
            self.probability(1, read_count),
            self.probability(2, read_count),
        )


def regularize(p: float, regularization_const: float) -> float:
    """Blend ``p`` with 1/3: the distance to 1/3 shrinks by a factor 1 + r."""
    return (p + regularization_const / 3.0) / (1.0 + regularization_const)


@dataclass(frozen=True)
class CopyNumberProbabilities:
    """Likelihoods for copy numbers 0, 1 and 2 of one k-mer."""

    cn0: float
    cn1: float
    cn2: float

    def __post_init__(self) -> None:
        for value in (self.cn0, self.cn1, self.cn2):
            if not math.isfinite(value) or value < 0:
                raise InvalidConfiguration(
                    f"copy-number probabilities must be finite and >= 0, got {self.as_tuple()}"
                )

    @classmethod
    def from_likelihoods(
        cls,
        p_cn0: float,
        p_cn1: float,
        p_cn2: float,
        regularization_const: float = 0.0,
    ) -> "CopyNumberProbabilities":
        if regularization_const < 0:
            raise InvalidConfiguration(
                f"regularization_const must be >= 0, got {regularization_const}"
            )
        if regularization_const > 0:
            return cls(
                regularize(p_cn0, regularization_const),
                regularize(p_cn1, regularization_const),
                regularize(p_cn2, regularization_const),
            )
        return cls(p_cn0, p_cn1, p_cn2)

    def get(self, copy_number: int) -> float:
        if copy_number not in COPY_NUMBERS:
            raise InvalidConfiguration(f"copy number must be one of {COPY_NUMBERS}, got {copy_number}")
        return self.as_tuple()[copy_number]

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.cn0, self.cn1, self.cn2)

    def is_informative(self) -> bool:
        return self.cn0 > 0 or self.cn1 > 0 or self.cn2 > 0
