"""Tests for per-entry processing."""

import pytest

from streamgroup.consumer.processing import is_prime


class TestIsPrime:
    """Test primality classification."""

    @pytest.mark.parametrize("n", [2, 3, 5, 7, 11, 13, 97, 7919])
    def test_primes(self, n):
        """Test known primes."""
        assert is_prime(n)

    @pytest.mark.parametrize("n", [-7, 0, 1, 4, 9, 15, 25, 49, 7917])
    def test_non_primes(self, n):
        """Test known non-primes."""
        assert not is_prime(n)

    def test_first_hundred(self):
        """Test the count of primes below 100."""
        assert sum(1 for n in range(100) if is_prime(n)) == 25
