"""
core/lcg.py -- Restart-safe unique identifier generators.

A linear congruential generator (LCG) with full period is a bijection on its
state space: starting from any seed it visits every value exactly once before
repeating. Gatehouse uses that property as an ID allocator, not as a source of
statistical randomness.

    state = a * state + c  (mod 2^64)

Full-period conditions for a power-of-two modulus: c odd, a = 1 (mod 4).
Both hold for the constants below.

Restart safety: two generators built from the same seed and advanced by the
same number of steps yield identical sequences. Each manager persists its seed
once (see auth/manager.py) and calls skip(row_count) at boot, so newly issued
IDs continue where the previous process left off.

Skip-ahead uses the arbitrary-stride algorithm from F. Brown, "Random Number
Generation with Arbitrary Stride", Trans. Am. Nucl. Soc. (Nov. 1994): the
combined multiplier/increment pair for N steps is built by binary
decomposition of N, so skip(N) costs O(log2 N) instead of O(N).

Thread safety: none. next() and skip() mutate internal state without a lock.
Callers serialize access (the managers allocate IDs inside Database.writer()).

Layer rule: core/ is the kernel. No imports from auth/.
"""

from __future__ import annotations

MASK64 = (1 << 64) - 1
MASK48 = (1 << 48) - 1

_MULTIPLIER_64 = 6364136223846793005
_MULTIPLIER_48 = 25214903917
_INCREMENT = 1


def _stride(a: int, c: int, steps: int, mask: int) -> tuple[int, int]:
    """Return (A, C) such that x_{n+steps} = A * x_n + C (mod mask + 1).

    steps must already be reduced to an unsigned value in [0, mask].
    """
    a_next = 1
    c_next = 0
    while steps > 0:
        if steps & 1:
            a_next = (a_next * a) & mask
            c_next = (c_next * a + c) & mask
        c = ((a + 1) * c) & mask
        a = (a * a) & mask
        steps >>= 1
    return a_next, c_next


class LCG:
    """64-bit full-period permutation generator.

    Usage:
        gen = LCG(seed)
        first = gen.next()
        gen.skip(-1)
        assert gen.next() == first
    """

    a: int = _MULTIPLIER_64
    c: int = _INCREMENT

    def __init__(self, seed: int) -> None:
        self._state = seed & MASK64

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> int:
        """Advance one step and return the new state."""
        self._state = (self.a * self._state + self.c) & MASK64
        return self._state

    def skip(self, steps: int) -> None:
        """Advance by steps (rewind when negative) in O(log |steps|).

        A negative stride is taken modulo 2^64, which walks the full period
        forward to the same point as walking |steps| backward.
        """
        a_next, c_next = _stride(self.a, self.c, steps & MASK64, MASK64)
        self._state = (a_next * self._state + c_next) & MASK64


class LCG48:
    """48-bit variant for ID spaces that must never spill into higher bits.

    Same contract as LCG. The seed and every intermediate value are masked to
    48 bits, and skip() reduces the stride modulo the 2^48 period.
    """

    a: int = _MULTIPLIER_48
    c: int = _INCREMENT

    def __init__(self, seed: int) -> None:
        self._state = seed & MASK48

    @property
    def state(self) -> int:
        return self._state

    def next(self) -> int:
        self._state = (self.a * self._state + self.c) & MASK48
        return self._state

    def skip(self, steps: int) -> None:
        a_next, c_next = _stride(self.a, self.c, steps & MASK48, MASK48)
        self._state = (a_next * self._state + c_next) & MASK48


def to_signed64(value: int) -> int:
    """Reinterpret an unsigned 64-bit value as two's-complement signed.

    SQLite INTEGER columns are signed 64-bit. The mapping is a bijection, so
    distinct generator outputs stay distinct primary keys.
    """
    value &= MASK64
    return value - (1 << 64) if value >= (1 << 63) else value
