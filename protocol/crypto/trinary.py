# MIT License
# Copyright (c) 2025 Hashborn

"""
Tryte <-> binary address codec.

Addresses and transaction hashes are 81 trytes (243 balanced trits). On disk
they are packed 5 trits per byte (t5b1) into 49 bytes.
"""

from typing import Dict, List, Tuple
from ..config.params import HASH_SIZE, HASH_TRYTES
from ..types.common import FormatError

TRYTE_ALPHABET = "9ABCDEFGHIJKLMNOPQRSTUVWXYZ"
TRITS_PER_TRYTE = 3
TRITS_PER_BYTE = 5
HASH_TRITS = HASH_TRYTES * TRITS_PER_TRYTE

# max |value| representable by 5 balanced trits: (3^5 - 1) / 2
_MAX_BYTE_VALUE = 121


def _balanced_trits(value: int, width: int) -> Tuple[int, ...]:
    trits = []
    for _ in range(width):
        rem = value % 3
        if rem == 2:
            rem = -1
        trits.append(rem)
        value = (value - rem) // 3
    return tuple(trits)


_TRYTE_TRITS: Dict[str, Tuple[int, ...]] = {}
for _idx, _ch in enumerate(TRYTE_ALPHABET):
    _TRYTE_TRITS[_ch] = _balanced_trits(_idx if _idx <= 13 else _idx - 27, TRITS_PER_TRYTE)

_BYTE_TRITS: Dict[int, Tuple[int, ...]] = {}
for _val in range(-_MAX_BYTE_VALUE, _MAX_BYTE_VALUE + 1):
    _BYTE_TRITS[_val & 0xFF] = _balanced_trits(_val, TRITS_PER_BYTE)


def trytes_to_bytes(trytes: str) -> bytes:
    """
    Encode a textual hash into its fixed-width binary form.

    Inputs shorter than 81 trytes are right-padded with '9' (zero trytes).

    Raises:
        FormatError: If the input is too long or contains non-tryte characters
    """
    if not isinstance(trytes, str):
        raise FormatError(f"Expected tryte string, got {type(trytes).__name__}")
    if len(trytes) > HASH_TRYTES:
        raise FormatError(f"Tryte string too long: {len(trytes)} trytes (max {HASH_TRYTES})")

    trits: List[int] = []
    for pos, ch in enumerate(trytes.ljust(HASH_TRYTES, "9")):
        try:
            trits.extend(_TRYTE_TRITS[ch])
        except KeyError:
            raise FormatError(f"Invalid tryte {ch!r} at position {pos} in {trytes!r}") from None

    out = bytearray(HASH_SIZE)
    for i in range(HASH_SIZE):
        value = 0
        chunk = trits[i * TRITS_PER_BYTE:(i + 1) * TRITS_PER_BYTE]
        for j in reversed(range(len(chunk))):
            value = value * 3 + chunk[j]
        out[i] = value & 0xFF
    return bytes(out)


def bytes_to_trytes(raw: bytes) -> str:
    """
    Decode a 49-byte binary hash into its 81-tryte textual form.

    Raises:
        FormatError: If the length is wrong or a byte is not valid t5b1
    """
    if len(raw) != HASH_SIZE:
        raise FormatError(f"Binary hash must be {HASH_SIZE} bytes, got {len(raw)}")

    trits: List[int] = []
    for pos, b in enumerate(raw):
        try:
            trits.extend(_BYTE_TRITS[b])
        except KeyError:
            raise FormatError(f"Byte 0x{b:02x} at offset {pos} is not a valid trit packing") from None

    chars = []
    for i in range(0, HASH_TRITS, TRITS_PER_TRYTE):
        value = trits[i] + trits[i + 1] * 3 + trits[i + 2] * 9
        chars.append(TRYTE_ALPHABET[value])
    return "".join(chars)


def is_valid_trytes(trytes: str) -> bool:
    try:
        trytes_to_bytes(trytes)
        return True
    except FormatError:
        return False
