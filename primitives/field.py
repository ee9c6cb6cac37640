"""Mersenne-31 field GF(p) and its complex/quartic extensions CM31 and QM31.

M31 arithmetic reduces with the Mersenne fold (x & P) + (x >> 31), which must
stay bit-compatible with other verifiers of the same proofs. FF is the galois
field type for GF(2^31 - 1), used for vectorised batch inversion and as the
reference the fold reduction is checked against.

Tower:
    CM31 = M31[i] / (i^2 + 1)
    QM31 = CM31[u] / (u^2 - R),  R = 2 + i
"""

from typing import Sequence, Union

import galois

# --- Field Construction ---

M31_PRIME = (1 << 31) - 1
MODULUS_BITS = 31

FF = galois.GF(M31_PRIME)
"""Base field GF(p) - Mersenne-31 prime field."""

SECURE_EXTENSION_DEGREE = 4


class ArithmeticDomainError(ValueError):
    """Operation undefined on its input (inverse of zero, off-curve point...)."""


def reduce(value: int) -> int:
    """Canonical residue of a non-negative integer modulo 2^31 - 1.

    Folds the high bits onto the low bits until the value fits, then maps P to 0.
    """
    while value > M31_PRIME:
        value = (value & M31_PRIME) + (value >> MODULUS_BITS)
    return 0 if value == M31_PRIME else value


# --- Base Field ---


class M31:
    """Element of GF(2^31 - 1), always canonically reduced."""

    __slots__ = ("value",)

    def __init__(self, value: int = 0):
        if value < 0:
            value = M31_PRIME - reduce(-value)
        self.value = reduce(value)

    @classmethod
    def zero(cls) -> "M31":
        return cls(0)

    @classmethod
    def one(cls) -> "M31":
        return cls(1)

    def __add__(self, other):
        if isinstance(other, int):
            other = M31(other)
        if not isinstance(other, M31):
            return NotImplemented
        return M31(self.value + other.value)

    __radd__ = __add__

    def __sub__(self, other):
        if isinstance(other, int):
            other = M31(other)
        if not isinstance(other, M31):
            return NotImplemented
        return M31(self.value + M31_PRIME - other.value)

    def __rsub__(self, other):
        if isinstance(other, int):
            return M31(other) - self
        return NotImplemented

    def __mul__(self, other):
        if isinstance(other, int):
            other = M31(other)
        if not isinstance(other, M31):
            return NotImplemented
        return M31(self.value * other.value)

    __rmul__ = __mul__

    def __neg__(self) -> "M31":
        return M31(M31_PRIME - self.value)

    def __pow__(self, exponent: int) -> "M31":
        if exponent < 0:
            return self.inverse() ** -exponent
        result, base = M31(1), self
        while exponent:
            if exponent & 1:
                result = result * base
            base = base * base
            exponent >>= 1
        return result

    def square(self) -> "M31":
        return self * self

    def double(self) -> "M31":
        return self + self

    def inverse(self) -> "M31":
        """Multiplicative inverse via Fermat: a^(p-2)."""
        if self.is_zero():
            raise ArithmeticDomainError("inverse of zero in M31")
        return self ** (M31_PRIME - 2)

    def is_zero(self) -> bool:
        return self.value == 0

    def __eq__(self, other) -> bool:
        if isinstance(other, int):
            return self.value == other % M31_PRIME
        if isinstance(other, M31):
            return self.value == other.value
        if isinstance(other, (CM31, QM31)):
            return other == self
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.value)

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"M31({self.value})"


# --- Complex Extension ---


class CM31:
    """Element a + bi of M31[i] / (i^2 + 1)."""

    __slots__ = ("real", "imag")

    def __init__(self, real: Union[M31, int] = 0, imag: Union[M31, int] = 0):
        self.real = real if isinstance(real, M31) else M31(real)
        self.imag = imag if isinstance(imag, M31) else M31(imag)

    @classmethod
    def zero(cls) -> "CM31":
        return cls(0, 0)

    @classmethod
    def one(cls) -> "CM31":
        return cls(1, 0)

    @staticmethod
    def _coerce(other):
        if isinstance(other, CM31):
            return other
        if isinstance(other, (M31, int)):
            return CM31(other, 0)
        return None

    def __add__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return CM31(self.real + rhs.real, self.imag + rhs.imag)

    __radd__ = __add__

    def __sub__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return CM31(self.real - rhs.real, self.imag - rhs.imag)

    def __rsub__(self, other):
        lhs = self._coerce(other)
        if lhs is None:
            return NotImplemented
        return lhs - self

    def __mul__(self, other):
        if isinstance(other, (M31, int)):
            return CM31(self.real * other, self.imag * other)
        if not isinstance(other, CM31):
            return NotImplemented
        # (a + bi)(c + di) = (ac - bd) + (ad + bc)i
        return CM31(
            self.real * other.real - self.imag * other.imag,
            self.real * other.imag + self.imag * other.real,
        )

    __rmul__ = __mul__

    def __neg__(self) -> "CM31":
        return CM31(-self.real, -self.imag)

    def __pow__(self, exponent: int) -> "CM31":
        if exponent < 0:
            return self.inverse() ** -exponent
        result, base = CM31.one(), self
        while exponent:
            if exponent & 1:
                result = result * base
            base = base * base
            exponent >>= 1
        return result

    def square(self) -> "CM31":
        return self * self

    def conjugate(self) -> "CM31":
        return CM31(self.real, -self.imag)

    def norm(self) -> M31:
        """a^2 + b^2, the product of the element with its conjugate."""
        return self.real.square() + self.imag.square()

    def inverse(self) -> "CM31":
        if self.is_zero():
            raise ArithmeticDomainError("inverse of zero in CM31")
        # 1 / (a + bi) = (a - bi) / (a^2 + b^2)
        return self.conjugate() * self.norm().inverse()

    def is_zero(self) -> bool:
        return self.real.is_zero() and self.imag.is_zero()

    def __eq__(self, other) -> bool:
        rhs = self._coerce(other)
        if rhs is None:
            if isinstance(other, QM31):
                return other == self
            return NotImplemented
        return self.real == rhs.real and self.imag == rhs.imag

    def __hash__(self) -> int:
        return hash((self.real.value, self.imag.value))

    def __repr__(self) -> str:
        return f"CM31({self.real.value}, {self.imag.value})"


# Non-residue R = 2 + i defining u^2 = R.
R = CM31(2, 1)


# --- Secure (Quartic) Extension ---


class QM31:
    """Element a + bu of CM31[u] / (u^2 - R); the secure field of the protocol."""

    __slots__ = ("first", "second")

    def __init__(self, first: Union[CM31, M31, int] = 0, second: Union[CM31, M31, int] = 0):
        self.first = first if isinstance(first, CM31) else CM31(first)
        self.second = second if isinstance(second, CM31) else CM31(second)

    @classmethod
    def zero(cls) -> "QM31":
        return cls(CM31.zero(), CM31.zero())

    @classmethod
    def one(cls) -> "QM31":
        return cls(CM31.one(), CM31.zero())

    @classmethod
    def from_ints(cls, a: int, b: int, c: int, d: int) -> "QM31":
        return cls(CM31(a, b), CM31(c, d))

    @classmethod
    def from_m31_array(cls, values: Sequence[Union[M31, int]]) -> "QM31":
        """Build ((v0, v1), (v2, v3)) from four base-field coordinates."""
        if len(values) != SECURE_EXTENSION_DEGREE:
            raise ValueError(f"QM31 needs {SECURE_EXTENSION_DEGREE} coordinates, got {len(values)}")
        return cls(CM31(values[0], values[1]), CM31(values[2], values[3]))

    def to_m31_array(self) -> list[M31]:
        return [self.first.real, self.first.imag, self.second.real, self.second.imag]

    @classmethod
    def from_partial_evals(cls, evals: Sequence["QM31"]) -> "QM31":
        """Recombine coordinate evaluations: e0 + e1*(0,1,0,0) + e2*(0,0,1,0) + e3*(0,0,0,1)."""
        result = evals[0]
        for index, value in enumerate(evals[1:], start=1):
            basis = [0, 0, 0, 0]
            basis[index] = 1
            result = result + value * cls.from_m31_array(basis)
        return QM31.lift(result)

    @classmethod
    def lift(cls, value) -> "QM31":
        """Embed an M31, CM31 or int into the secure field."""
        lifted = cls._coerce(value)
        if lifted is None:
            raise TypeError(f"cannot lift {type(value).__name__} into QM31")
        return lifted

    @staticmethod
    def _coerce(other):
        if isinstance(other, QM31):
            return other
        if isinstance(other, (CM31, M31, int)):
            return QM31(other, CM31.zero())
        return None

    def __add__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return QM31(self.first + rhs.first, self.second + rhs.second)

    __radd__ = __add__

    def __sub__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return QM31(self.first - rhs.first, self.second - rhs.second)

    def __rsub__(self, other):
        lhs = self._coerce(other)
        if lhs is None:
            return NotImplemented
        return lhs - self

    def __mul__(self, other):
        if isinstance(other, (CM31, M31, int)):
            return QM31(self.first * other, self.second * other)
        if not isinstance(other, QM31):
            return NotImplemented
        # (a + bu)(c + du) = (ac + R bd) + (ad + bc)u
        a, b, c, d = self.first, self.second, other.first, other.second
        return QM31(a * c + R * (b * d), a * d + b * c)

    __rmul__ = __mul__

    def __truediv__(self, other):
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return self * rhs.inverse()

    def __rtruediv__(self, other):
        lhs = self._coerce(other)
        if lhs is None:
            return NotImplemented
        return lhs * self.inverse()

    def __neg__(self) -> "QM31":
        return QM31(-self.first, -self.second)

    def __pow__(self, exponent: int) -> "QM31":
        if exponent < 0:
            return self.inverse() ** -exponent
        result, base = QM31.one(), self
        while exponent:
            if exponent & 1:
                result = result * base
            base = base * base
            exponent >>= 1
        return result

    def square(self) -> "QM31":
        return self * self

    def double(self) -> "QM31":
        return self + self

    def complex_conjugate(self) -> "QM31":
        """Conjugate over CM31: a + bu -> a - bu."""
        return QM31(self.first, -self.second)

    def inverse(self) -> "QM31":
        if self.is_zero():
            raise ArithmeticDomainError("inverse of zero in QM31")
        # 1 / (a + bu) = (a - bu) / (a^2 - R b^2)
        b2 = self.second.square()
        denom = self.first.square() - R * b2
        denom_inverse = denom.inverse()
        return QM31(self.first * denom_inverse, -self.second * denom_inverse)

    def is_zero(self) -> bool:
        return self.first.is_zero() and self.second.is_zero()

    def __eq__(self, other) -> bool:
        rhs = self._coerce(other)
        if rhs is None:
            return NotImplemented
        return self.first == rhs.first and self.second == rhs.second

    def __hash__(self) -> int:
        return hash(tuple(v.value for v in self.to_m31_array()))

    def __repr__(self) -> str:
        return "QM31({}, {}, {}, {})".format(*(v.value for v in self.to_m31_array()))


SecureField = QM31
