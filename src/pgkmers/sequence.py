"""DNA sequences and rolling 2-bit k-mer encoding.

A k-mer is packed into a Python integer with two bits per base (A=0, C=1, G=2, T=3);
the first base of the window occupies the most significant bits. No reverse-complement
canonicalization is applied, so two encoded k-mers are equal iff their bases are equal
in the same left-to-right orientation.
"""

from __future__ import annotations

from typing import Iterator, List, Union

import numpy as np

from .errors import InvalidConfiguration

UNDEFINED = 4

BASES = "ACGT"

ASCII_TO_CODE = np.full(256, UNDEFINED, dtype=np.uint8)
for _code, _base in enumerate(BASES):
    ASCII_TO_CODE[ord(_base)] = _code
    ASCII_TO_CODE[ord(_base.lower())] = _code


class DnaSequence:
    """Immutable sequence over {A,C,G,T} plus an undefined marker (any other symbol)."""

    __slots__ = ("_text", "_codes")

    def __init__(self, text: str = "") -> None:
        self._text = text.upper()
        if self._text:
            raw = np.frombuffer(self._text.encode("ascii", errors="replace"), dtype=np.uint8)
            self._codes = ASCII_TO_CODE[raw]
        else:
            self._codes = np.zeros((0,), dtype=np.uint8)

    @property
    def codes(self) -> np.ndarray:
        """uint8 codes, one per symbol (0-3 for ACGT, 4 for undefined)."""
        return self._codes

    def contains_undefined(self) -> bool:
        return bool((self._codes == UNDEFINED).any())

    def __len__(self) -> int:
        return len(self._text)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DnaSequence):
            return self._text == other._text
        if isinstance(other, str):
            return self._text == other.upper()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._text)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"DnaSequence({self._text!r})"


SequenceLike = Union[DnaSequence, str]


def as_sequence(seq: SequenceLike) -> DnaSequence:
    return seq if isinstance(seq, DnaSequence) else DnaSequence(seq)


def check_kmer_size(kmer_size: int) -> None:
    if kmer_size < 1:
        raise InvalidConfiguration(f"kmer_size must be >= 1, got {kmer_size}")


class RollingKmer:
    """Rolling encoding of the last ``kmer_size`` consumed symbols.

    ``debt`` counts how many more symbols must be consumed before the window holds
    ``kmer_size`` consecutive defined bases. It starts at ``kmer_size`` and is reset to
    ``kmer_size + 1`` by an undefined symbol, so that no window overlapping that symbol
    is ever reported as valid.
    """

    __slots__ = ("kmer_size", "value", "debt", "_mask")

    def __init__(self, kmer_size: int) -> None:
        check_kmer_size(kmer_size)
        self.kmer_size = kmer_size
        self.value = 0
        self.debt = kmer_size
        self._mask = (1 << (2 * kmer_size)) - 1

    def is_valid(self) -> bool:
        return self.debt == 0

    def consume(self, code: int) -> None:
        """Shift one symbol (code 0-3, anything else is undefined) into the window."""
        if code > 3:
            self.debt = self.kmer_size + 1
            code = 0
        self.value = ((self.value << 2) | code) & self._mask
        if self.debt > 0:
            self.debt -= 1


def iter_kmers(sequence: SequenceLike, kmer_size: int) -> Iterator[int]:
    """Yield the encoding of every window of ``kmer_size`` defined bases, left to right.

    The window ending at position i is reported while visiting position i + 1, and the
    final window after the scan, which yields exactly ``len - k + 1`` windows for a
    fully defined sequence and none for one shorter than k.
    """
    window = RollingKmer(kmer_size)
    for code in as_sequence(sequence).codes.tolist():
        if window.is_valid():
            yield window.value
        window.consume(code)
    if window.is_valid():
        yield window.value


def encode_kmer(kmer: SequenceLike) -> int:
    """Encode a fully defined k-mer string."""
    seq = as_sequence(kmer)
    if len(seq) == 0:
        raise InvalidConfiguration("cannot encode an empty k-mer")
    if seq.contains_undefined():
        raise InvalidConfiguration(f"k-mer contains undefined bases: {seq}")
    value = 0
    for code in seq.codes.tolist():
        value = (value << 2) | code
    return value


def decode_kmer(value: int, kmer_size: int) -> str:
    check_kmer_size(kmer_size)
    bases: List[str] = []
    for _ in range(kmer_size):
        bases.append(BASES[value & 3])
        value >>= 2
    return "".join(reversed(bases))
