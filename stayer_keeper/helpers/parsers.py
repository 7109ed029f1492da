"""Parsing utilities for amounts, keys and hashes."""

from decimal import Decimal

from typing import Annotated

from pydantic import AfterValidator, BeforeValidator

from stayer_keeper.helpers.constants import MOTES_PER_CSPR


U512_MAX = 2**512 - 1

PUBLIC_KEY_LENGTHS = {"01": 32, "02": 33}
"""Key bytes per algorithm tag (ed25519, secp256k1)"""

HASH_PREFIXES = ("hash-", "contract-package-wasm", "contract-package-", "contract-")
"""Longest match first"""


def parse_u512(value: str | int) -> int:
    """Parse an unsigned 512-bit amount given as decimal string or int.

    Args:
        value: Decimal string (e.g. "500000000000") or int

    Returns:
        int: Parsed amount

    Raises:
        ValueError: If the value is not a non-negative integer below 2**512

    Example:
        >>> parse_u512("500000000000")
        500000000000
    """
    if isinstance(value, bool):
        msg = "U512 amount cannot be a bool"
        raise ValueError(msg)
    if isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            msg = f"U512 amount must be a decimal string, got {value!r}"
            raise ValueError(msg)
        amount = int(text)
    else:
        amount = int(value)
    if amount < 0 or amount > U512_MAX:
        msg = f"U512 amount out of range: {value!r}"
        raise ValueError(msg)
    return amount


def _u512_to_str(value: str | int) -> str:
    return str(parse_u512(value))


U512Str = Annotated[str, BeforeValidator(_u512_to_str)]
"""Decimal-string motes amount, validated to fit in a U512"""


def motes_to_cspr(motes: int | str) -> Decimal:
    """Convert motes to CSPR.

    Example:
        >>> motes_to_cspr(2_500_000_000)
        Decimal('2.5')
    """
    return Decimal(parse_u512(motes)) / MOTES_PER_CSPR


def normalize_public_key(public_key: str) -> str:
    """Validate a tagged Casper public key and return it as lower-case hex.

    Args:
        public_key: Hex public key with algorithm tag ("01" ed25519, "02" secp256k1)

    Returns:
        str: Lower-case hex public key

    Raises:
        ValueError: If the tag or length is wrong

    Example:
        >>> normalize_public_key("01" + "AB" * 32)[:4]
        '01ab'
    """
    key = public_key.strip().lower()
    tag = key[:2]
    if tag not in PUBLIC_KEY_LENGTHS:
        msg = f"Unknown public key tag: {public_key[:2]!r}"
        raise ValueError(msg)
    try:
        raw = bytes.fromhex(key[2:])
    except ValueError:
        msg = f"Public key is not hex: {public_key!r}"
        raise ValueError(msg) from None
    if len(raw) != PUBLIC_KEY_LENGTHS[tag]:
        msg = f"Public key has {len(raw)} key bytes, expected {PUBLIC_KEY_LENGTHS[tag]}"
        raise ValueError(msg)
    return key


PublicKeyHex = Annotated[str, AfterValidator(normalize_public_key)]
"""Validated, lower-cased tagged public key"""


def parse_hash(value: str) -> bytes:
    """Parse a 32-byte hash, stripping Casper key prefixes like ``hash-``.

    Example:
        >>> len(parse_hash("hash-" + "00" * 32))
        32
    """
    text = value.strip()
    for prefix in HASH_PREFIXES:
        if text.startswith(prefix):
            text = text[len(prefix) :]
            break
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        msg = f"Hash is not hex: {value!r}"
        raise ValueError(msg) from None
    if len(raw) != 32:
        msg = f"Hash must be 32 bytes, got {len(raw)}"
        raise ValueError(msg)
    return raw


__all__ = [
    "U512Str",
    "U512_MAX",
    "PublicKeyHex",
    "motes_to_cspr",
    "normalize_public_key",
    "parse_hash",
    "parse_u512",
]
