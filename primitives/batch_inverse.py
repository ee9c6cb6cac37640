"""Montgomery batch inversion for M31 and CM31.

The Montgomery trick converts N field inversions into 3N-3 multiplications + 1 inversion.
Base-field inversion runs on galois FF arrays; CM31 elements are inverted through
their M31 norms: 1 / z = conj(z) / |z|^2.
"""

from typing import List

from primitives.field import FF, CM31, M31, ArithmeticDomainError


def batch_inverse(values):
    """Montgomery batch inversion for any galois array.

    Algorithm:
    1. Forward pass: Compute prefix products cumprods[i] = a[0] * a[1] * ... * a[i]
    2. Single inversion: inv_total = cumprods[N-1]^(-1)
    3. Backward pass: Extract individual inverses using cumprods

    Args:
        values: Galois FieldArray to invert (must all be non-zero)

    Returns:
        Galois FieldArray where result[i] = values[i]^(-1)
    """
    n = len(values)
    if n == 0:
        return values
    if n == 1:
        return values ** -1

    field_type = type(values)

    cumprods = field_type.Zeros(n)
    cumprods[0] = values[0]
    for i in range(1, n):
        cumprods[i] = cumprods[i - 1] * values[i]

    inv_total = cumprods[n - 1] ** -1

    results = field_type.Zeros(n)
    z = inv_total
    for i in range(n - 1, 0, -1):
        results[i] = z * cumprods[i - 1]
        z = z * values[i]
    results[0] = z

    return results


def batch_inverse_m31(values: List[M31]) -> List[M31]:
    """Montgomery batch inversion for M31 (list interface).

    Raises:
        ArithmeticDomainError: If any element is zero
    """
    if len(values) == 0:
        return []
    if any(v.is_zero() for v in values):
        raise ArithmeticDomainError("batch inverse of zero in M31")
    inv_arr = batch_inverse(FF([v.value for v in values]))
    return [M31(int(v)) for v in inv_arr]


def batch_inverse_cm31(values: List[CM31]) -> List[CM31]:
    """Montgomery batch inversion for CM31 (list interface)."""
    norm_inverses = batch_inverse_m31([v.norm() for v in values])
    return [v.conjugate() * n for v, n in zip(values, norm_inverses)]
