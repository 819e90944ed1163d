"""Unit tests for core/lcg.py -- identifier generators.

Covers:
- Uniqueness over 10^6 sequential draws
- skip(n) then next() equals n+1 sequential draws, for positive and negative n
- skip(-1) after next() replays the same value
- Identically seeded generators stay in lockstep (restart reproduction)
- 48-bit variant never leaves its mask and honours the same skip contract
- to_signed64 is a bijection onto the signed 64-bit range
"""

import pytest

from core.lcg import LCG, LCG48, MASK48, MASK64, to_signed64
from core.security import gen_random_uint_not_prime

# ---------------------------------------------------------------------------
# LCG (64-bit)
# ---------------------------------------------------------------------------


class TestLCG:
    def test_constants(self) -> None:
        gen = LCG(42)
        assert gen.state == 42
        assert gen.a == 6364136223846793005
        assert gen.c == 1
        # Full-period conditions for modulus 2^64
        assert gen.a % 4 == 1
        assert gen.c % 2 == 1

    def test_next_applies_recurrence(self) -> None:
        gen = LCG(7)
        assert gen.next() == (6364136223846793005 * 7 + 1) & MASK64

    def test_million_draws_are_unique(self) -> None:
        gen = LCG(gen_random_uint_not_prime())
        seen = set()
        for _ in range(1_000_000):
            value = gen.next()
            assert value not in seen
            seen.add(value)
        assert len(seen) == 1_000_000

    @pytest.mark.parametrize("n", [0, 1, 2, 3, 17, 1000, 65_537])
    def test_skip_matches_sequential_draws(self, n: int) -> None:
        seed = 0x1234_5678_9ABC_DEF1
        skipped = LCG(seed)
        skipped.skip(n)

        stepped = LCG(seed)
        for _ in range(n):
            stepped.next()

        assert skipped.next() == stepped.next()

    @pytest.mark.parametrize("n", [-1, -2, -50, -4096])
    def test_negative_skip_rewinds(self, n: int) -> None:
        seed = 987654321
        gen = LCG(seed)
        for _ in range(-n):
            gen.next()
        gen.skip(n)
        assert gen.state == seed

    def test_negative_skip_matches_forward_definition(self) -> None:
        # Three draws then skip(-3) rewinds to the seed; next() replays the first draw.
        gen = LCG(555)
        first = gen.next()
        gen.next()
        gen.next()
        gen.skip(-3)
        assert gen.next() == first

    def test_skip_back_one_replays(self) -> None:
        gen = LCG(gen_random_uint_not_prime())
        for _ in range(10_000):
            value = gen.next()
            assert value != 0
            gen.skip(-1)
            assert gen.next() == value

    def test_same_seed_same_sequence(self) -> None:
        seed = gen_random_uint_not_prime()
        first, second = LCG(seed), LCG(seed)
        first.skip(250)
        second.skip(250)
        assert [first.next() for _ in range(100)] == [second.next() for _ in range(100)]

    def test_large_skip_is_consistent_with_composition(self) -> None:
        a, b = LCG(3), LCG(3)
        a.skip(10**15)
        b.skip(10**15 - 1)
        b.next()
        assert a.state == b.state


# ---------------------------------------------------------------------------
# LCG48
# ---------------------------------------------------------------------------


class TestLCG48:
    def test_seed_is_masked(self) -> None:
        gen = LCG48(MASK64)
        assert gen.state == MASK48

    def test_outputs_stay_within_48_bits(self) -> None:
        gen = LCG48(gen_random_uint_not_prime())
        for _ in range(10_000):
            assert 0 <= gen.next() <= MASK48

    def test_draws_are_unique(self) -> None:
        gen = LCG48(99)
        values = [gen.next() for _ in range(100_000)]
        assert len(set(values)) == len(values)

    @pytest.mark.parametrize("n", [0, 1, 5, 999])
    def test_skip_matches_sequential_draws(self, n: int) -> None:
        skipped, stepped = LCG48(11), LCG48(11)
        skipped.skip(n)
        for _ in range(n):
            stepped.next()
        assert skipped.next() == stepped.next()

    def test_skip_back_one_replays(self) -> None:
        gen = LCG48(123456789)
        value = gen.next()
        gen.skip(-1)
        assert gen.next() == value

    def test_skip_by_full_period_is_identity(self) -> None:
        gen = LCG48(31337)
        gen.skip(1 << 48)
        assert gen.state == 31337

    @pytest.mark.parametrize("n", [5, -5, 1 << 60])
    def test_stride_beyond_period_reduces_modulo_period(self, n: int) -> None:
        wrapped, reduced = LCG48(2718), LCG48(2718)
        wrapped.skip(n + (3 << 48))
        reduced.skip(n % (1 << 48))
        assert wrapped.state == reduced.state


# ---------------------------------------------------------------------------
# Signed reinterpretation
# ---------------------------------------------------------------------------


class TestToSigned64:
    def test_small_values_unchanged(self) -> None:
        assert to_signed64(0) == 0
        assert to_signed64(12345) == 12345

    def test_high_bit_maps_negative(self) -> None:
        assert to_signed64(MASK64) == -1
        assert to_signed64(1 << 63) == -(1 << 63)

    def test_range(self) -> None:
        gen = LCG(1)
        for _ in range(1000):
            value = to_signed64(gen.next())
            assert -(1 << 63) <= value < (1 << 63)
