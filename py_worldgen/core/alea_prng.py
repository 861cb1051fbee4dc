"""
Seeded Alea pseudo random number generator.

Based on Johannes Baagøe's Alea algorithm. Every stochastic step of the
world generator draws from an explicit instance of this class, so the same
seed always reproduces the same world.
"""

from typing import List, MutableSequence, Sequence, Tuple, TypeVar, Union

T = TypeVar("T")

Seed = Union[int, str]

_MASH_SEED = 0xEFC8249D
_MASH_MULTIPLIER = 0.02519603282416938
_STEP_MULTIPLIER = 2091639
_TWO_POW_32 = 0x100000000
_TWO_POW_MINUS_32 = 2.3283064365386963e-10


def _uint32(n) -> int:
    return int(n) & 0xFFFFFFFF


class _Mash:
    """Alea's string hash; keeps its running state between calls."""

    def __init__(self):
        self.n = _MASH_SEED

    def __call__(self, data) -> float:
        n = self.n
        for char in str(data):
            n += ord(char)
            h = _MASH_MULTIPLIER * n
            n = _uint32(h)
            h = (h - n) * n
            n = _uint32(h)
            h -= n
            n += h * _TWO_POW_32
        self.n = n
        return _uint32(n) * _TWO_POW_MINUS_32


def _initial_state(args: Sequence) -> Tuple[float, float, float]:
    """Hash the seed arguments into the three fractional state words."""
    mash = _Mash()
    state = [mash(" "), mash(" "), mash(" ")]
    for arg in args:
        for k in range(3):
            state[k] -= mash(arg)
            if state[k] < 0:
                state[k] += 1
    return state[0], state[1], state[2]


class AleaPRNG:
    """
    Alea PRNG with the sampling helpers the generators need.

    The stream only depends on the seed, so two instances built from the same
    seed yield bit-identical sequences.
    """

    def __init__(self, seed: Seed):
        """Initialize with a seed string or number."""
        self.seed = seed
        self.call_count = 0

        args = list(seed) if hasattr(seed, "__iter__") and not isinstance(seed, str) else [seed]
        self.s0, self.s1, self.s2 = _initial_state(args)
        self.c = 1

    def random(self) -> float:
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        t = _STEP_MULTIPLIER * self.s0 + self.c * _TWO_POW_MINUS_32
        self.s0, self.s1 = self.s1, self.s2
        self.c = int(t)
        self.s2 = t - self.c
        return self.s2

    def uniform(self, low: float, high: float) -> float:
        """Random float in [low, high)."""
        return low + self.random() * (high - low)

    def rand_int(self, n: int) -> int:
        """Random integer in [0, n). Returns 0 when n <= 0."""
        if n <= 0:
            return 0
        return int(self.random() * n)

    def randint(self, low: int, high: int) -> int:
        """Random integer in [low, high] inclusive."""
        return int(self.random() * (high - low + 1)) + int(low)

    def chance(self, probability: float) -> bool:
        """True with the given probability."""
        if probability >= 1:
            return True
        if probability <= 0:
            return False
        return self.random() < probability

    def choice(self, seq: Sequence[T]) -> T:
        """Choose a random element from a non-empty sequence."""
        if not seq:
            raise IndexError("Cannot choose from an empty sequence")
        return seq[int(self.random() * len(seq))]

    def shuffle(self, seq: MutableSequence[T]) -> None:
        """Fisher-Yates shuffle in place, walking from the last index down."""
        for i in range(len(seq) - 1, 0, -1):
            j = self.rand_int(i + 1)
            seq[i], seq[j] = seq[j], seq[i]

    def permutation(self, n: int) -> List[int]:
        """Random permutation of range(n)."""
        order = list(range(n))
        self.shuffle(order)
        return order
