"""Per-entry work done by group consumers."""

import math


def is_prime(n: int) -> bool:
    """
    Check whether a number is prime.

    Args:
        n: Number to classify

    Returns:
        True if n is prime
    """
    if n < 2:
        return False
    if n < 4:
        return True
    if n % 2 == 0:
        return False
    for divisor in range(3, math.isqrt(n) + 1, 2):
        if n % divisor == 0:
            return False
    return True
