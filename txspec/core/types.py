"""
Typed values for blockchain-visible state.

Types follow Solidity spelling (`uint256`, `int8`, `bool`, `address`,
`bytes32`, `mapping(address => uint256)`); `uint` and `int` mean the 256-bit
types. Integer types with `bits=None` are unbounded and only arise
internally, for literals and for `balance` and `fsum` totals.
"""

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .errors import ArithmeticFault, ParseError


class OverflowMode(str, Enum):
    """What happens when a result leaves the range of a fixed-width integer"""
    WRAPPING = "wrapping"
    SATURATING = "saturating"
    CHECKED = "checked"


@dataclass(frozen=True)
class SolType:
    def zero(self) -> Any:
        raise NotImplementedError

    @property
    def is_integer(self) -> bool:
        return False


@dataclass(frozen=True)
class UIntType(SolType):
    bits: Optional[int] = None

    @property
    def is_integer(self) -> bool:
        return True

    @property
    def signed(self) -> bool:
        return False

    def zero(self) -> int:
        return 0

    def bounds(self):
        if self.bits is None:
            return 0, None
        return 0, (1 << self.bits) - 1

    def __str__(self) -> str:
        return f"uint{self.bits}" if self.bits else "uint"


@dataclass(frozen=True)
class IntType(SolType):
    bits: Optional[int] = None

    @property
    def is_integer(self) -> bool:
        return True

    @property
    def signed(self) -> bool:
        return True

    def zero(self) -> int:
        return 0

    def bounds(self):
        if self.bits is None:
            return None, None
        return -(1 << (self.bits - 1)), (1 << (self.bits - 1)) - 1

    def __str__(self) -> str:
        return f"int{self.bits}" if self.bits else "int"


@dataclass(frozen=True)
class BoolType(SolType):
    def zero(self) -> bool:
        return False

    def __str__(self) -> str:
        return "bool"


@dataclass(frozen=True)
class AddressType(SolType):
    def zero(self) -> str:
        return ZERO_ADDRESS

    def __str__(self) -> str:
        return "address"


@dataclass(frozen=True)
class BytesType(SolType):
    length: Optional[int] = None

    def zero(self) -> bytes:
        return bytes(self.length or 0)

    def __str__(self) -> str:
        return f"bytes{self.length}" if self.length else "bytes"


@dataclass(frozen=True)
class MappingType(SolType):
    key: SolType
    value: SolType

    def zero(self) -> Mapping:
        return EMPTY_MAPPING

    def __str__(self) -> str:
        return f"mapping({self.key} => {self.value})"


@dataclass(frozen=True)
class IntLiteralType(IntType):
    """Unbounded signed type of integer literals, narrowed by the other operand"""


INT_LITERAL = IntLiteralType()
BOOL = BoolType()
ADDRESS = AddressType()

ZERO_ADDRESS = "0x" + "0" * 40
# Largest exponentiation result allowed for unbounded types
MAX_UNBOUNDED_BITS = 4096
EMPTY_MAPPING: Mapping = MappingProxyType({})


@dataclass(frozen=True)
class TypedValue:
    """A concrete value together with its declared type"""
    type: SolType
    value: Any

    def __repr__(self) -> str:
        return f"{self.value!r}:{self.type}"


def normalize_address(raw: Any) -> str:
    """Normalize an address given as int or hex string to `0x` + 40 lowercase hex digits"""
    if isinstance(raw, bool):
        raise ValueError(f"Not an address: {raw!r}")
    if isinstance(raw, int):
        if raw < 0 or raw >= 1 << 160:
            raise ValueError(f"Address out of range: {raw:#x}")
        return f"0x{raw:040x}"
    if isinstance(raw, str):
        text = raw.lower()
        if text.startswith("0x"):
            text = text[2:]
        if not re.fullmatch(r"[0-9a-f]{1,40}", text):
            raise ValueError(f"Not an address: {raw!r}")
        return "0x" + text.rjust(40, "0")
    raise ValueError(f"Not an address: {raw!r}")


_INT_RE = re.compile(r"(u?)int(\d*)$")
_BYTES_RE = re.compile(r"bytes(\d*)$")


def parse_type(text: str) -> SolType:
    """
    Parse a Solidity type name.

    Examples:
        parse_type("uint256") -> UIntType(256)
        parse_type("mapping(address => uint256)")
    """
    text = text.strip()
    if text.startswith("mapping"):
        inner = text[len("mapping"):].strip()
        if not (inner.startswith("(") and inner.endswith(")")):
            raise ParseError(f"Malformed mapping type: {text}")
        inner = inner[1:-1]
        key_text, sep, value_text = inner.partition("=>")
        if not sep:
            raise ParseError(f"Malformed mapping type: {text}")
        return MappingType(parse_type(key_text), parse_type(value_text))

    if text == "bool":
        return BOOL
    if text == "address":
        return ADDRESS

    match = _INT_RE.match(text)
    if match:
        # `uint` and `int` are aliases for the 256-bit types
        bits = int(match.group(2)) if match.group(2) else 256
        if bits % 8 or not 8 <= bits <= 256:
            raise ParseError(f"Invalid integer width: {text}")
        return IntType(bits) if not match.group(1) else UIntType(bits)

    match = _BYTES_RE.match(text)
    if match:
        length = int(match.group(1)) if match.group(1) else None
        if length is not None and not 1 <= length <= 32:
            raise ParseError(f"Invalid bytes length: {text}")
        return BytesType(length)

    raise ParseError(f"Unknown type: {text}")


def coerce_value(sol_type: SolType, raw: Any) -> Any:
    """Convert a raw (JSON-ish) value into the canonical Python value for a type"""
    if isinstance(sol_type, MappingType):
        if not isinstance(raw, Mapping):
            raise ValueError(f"Expected mapping for {sol_type}, got {raw!r}")
        return MappingProxyType({
            coerce_value(sol_type.key, k): coerce_value(sol_type.value, v)
            for k, v in raw.items()
        })
    if isinstance(sol_type, BoolType):
        if not isinstance(raw, bool):
            raise ValueError(f"Expected bool, got {raw!r}")
        return raw
    if isinstance(sol_type, AddressType):
        return normalize_address(raw)
    if isinstance(sol_type, BytesType):
        if isinstance(raw, str):
            raw = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
        if not isinstance(raw, (bytes, bytearray)):
            raise ValueError(f"Expected bytes, got {raw!r}")
        if sol_type.length is not None and len(raw) != sol_type.length:
            raise ValueError(f"Expected {sol_type.length} bytes, got {len(raw)}")
        return bytes(raw)
    if sol_type.is_integer:
        if isinstance(raw, str):
            raw = int(raw, 0)
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError(f"Expected integer for {sol_type}, got {raw!r}")
        low, high = sol_type.bounds()
        if (low is not None and raw < low) or (high is not None and raw > high):
            raise ValueError(f"Value {raw} out of range for {sol_type}")
        return raw
    raise ValueError(f"Unsupported type: {sol_type}")


def fit_integer(result: int, sol_type: SolType, mode: OverflowMode, expr=None) -> int:
    """
    Bring an arithmetic result into the range of `sol_type`.

    Unbounded unsigned results below zero always fault; fixed widths follow
    `mode`.
    """
    low, high = sol_type.bounds()
    if low is not None and result < low or high is not None and result > high:
        if sol_type.bits is None:
            raise ArithmeticFault(f"Underflow: {result} is negative for {sol_type}", expr)
        if mode is OverflowMode.CHECKED:
            raise ArithmeticFault(f"Overflow: {result} does not fit {sol_type}", expr)
        if mode is OverflowMode.SATURATING:
            return max(low, min(high, result))
        span = 1 << sol_type.bits
        wrapped = (result - low) % span + low
        return wrapped
    return result


def integer_power(base: int, exponent: int, sol_type: SolType, mode: OverflowMode, expr=None) -> int:
    """
    `base ** exponent` fitted into `sol_type` without building results
    larger than the type can hold.
    """
    if exponent < 0:
        raise ArithmeticFault("Negative exponent", expr)
    if abs(base) <= 1:
        return fit_integer(base ** exponent, sol_type, mode, expr)

    # |base| ** exponent >= 2 ** floor_bits
    floor_bits = (abs(base).bit_length() - 1) * exponent
    negative = base < 0 and exponent % 2 == 1
    if sol_type.bits is None:
        if floor_bits > MAX_UNBOUNDED_BITS:
            raise ArithmeticFault(f"Exponentiation result exceeds {MAX_UNBOUNDED_BITS} bits", expr)
        return fit_integer(base ** exponent, sol_type, mode, expr)
    if mode is OverflowMode.WRAPPING:
        return fit_integer(pow(base, exponent, 1 << sol_type.bits), sol_type, mode, expr)
    if floor_bits >= sol_type.bits:
        if mode is OverflowMode.CHECKED:
            raise ArithmeticFault(f"Overflow: {base} ** {exponent} does not fit {sol_type}", expr)
        low, high = sol_type.bounds()
        return low if negative else high
    return fit_integer(base ** exponent, sol_type, mode, expr)


def wider_integer(left: SolType, right: SolType) -> SolType:
    """Result type of integer arithmetic between two operand types"""
    if isinstance(left, IntLiteralType):
        return right
    if isinstance(right, IntLiteralType):
        return left
    if left.bits is None or right.bits is None:
        kind = UIntType if not (left.signed or right.signed) else IntType
        return kind(None)
    bits = max(left.bits, right.bits)
    return IntType(bits) if (left.signed or right.signed) else UIntType(bits)


def format_value(value: Any) -> Any:
    """JSON-friendly rendering of a runtime value"""
    if isinstance(value, TypedValue):
        value = value.value
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, Mapping):
        return {str(format_value(k)): format_value(v) for k, v in value.items()}
    return value
