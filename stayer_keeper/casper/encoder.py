"""CLValue byte encoding for Casper runtime arguments.

Everything that crosses the wire as contract call arguments is serialised
here. Callers build typed argument structs (see ``entry_points``) and never
touch bytes directly.

Layout reminders (little-endian throughout):

* ``U32``/``U64``: fixed width
* ``U512``: one length byte, then the value's bytes with trailing zeros
  stripped (zero encodes as ``00``)
* ``String``/``List<U8>``: ``u32`` length prefix, then the bytes
* ``PublicKey``: algorithm tag byte, then the raw key
* ``CLValue``: ``u32`` length + value bytes, followed by the CLType bytes
* ``RuntimeArgs``: ``u32`` count, then ``(String name, CLValue)`` pairs
"""

from dataclasses import dataclass
from typing import Any

from stayer_keeper.helpers.parsers import normalize_public_key, parse_u512


def encode_u8(value: int) -> bytes:
    return value.to_bytes(1, "little")


def encode_u32(value: int) -> bytes:
    return value.to_bytes(4, "little")


def encode_u64(value: int) -> bytes:
    return value.to_bytes(8, "little")


def encode_u512(value: int | str) -> bytes:
    amount = parse_u512(value)
    if amount == 0:
        return b"\x00"
    raw = amount.to_bytes((amount.bit_length() + 7) // 8, "little")
    return encode_u8(len(raw)) + raw


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def encode_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return encode_u32(len(raw)) + raw


def encode_bytes(value: bytes) -> bytes:
    """Length-prefixed byte vector (``List<U8>`` / ``Bytes``)."""
    return encode_u32(len(value)) + value


def encode_public_key(public_key: str) -> bytes:
    """Tag byte followed by the raw key; the hex form already carries both."""
    return bytes.fromhex(normalize_public_key(public_key))


@dataclass(frozen=True)
class CLType:
    """A CLType: its tag, any nested type bytes, and its JSON form."""

    tag: int
    json: Any
    extra: bytes = b""

    def to_bytes(self) -> bytes:
        return encode_u8(self.tag) + self.extra


U8 = CLType(3, "U8")
U64 = CLType(5, "U64")
U512 = CLType(8, "U512")
STRING = CLType(10, "String")
LIST_U8 = CLType(14, {"List": "U8"}, U8.to_bytes())
ANY = CLType(21, "Any")
PUBLIC_KEY = CLType(22, "PublicKey")


def byte_array_type(length: int) -> CLType:
    return CLType(15, {"ByteArray": length}, encode_u32(length))


@dataclass(frozen=True)
class CLValue:
    """An encoded value plus its type and a human-readable ``parsed`` form."""

    cl_type: CLType
    data: bytes
    parsed: Any = None

    def to_bytes(self) -> bytes:
        return encode_bytes(self.data) + self.cl_type.to_bytes()

    def to_json(self) -> dict[str, Any]:
        return {
            "cl_type": self.cl_type.json,
            "bytes": self.data.hex(),
            "parsed": self.parsed,
        }


def cl_u64(value: int) -> CLValue:
    if not 0 <= value < 2**64:
        msg = f"U64 out of range: {value}"
        raise ValueError(msg)
    return CLValue(U64, encode_u64(value), value)


def cl_u512(value: int | str) -> CLValue:
    amount = parse_u512(value)
    return CLValue(U512, encode_u512(amount), str(amount))


def cl_string(value: str) -> CLValue:
    return CLValue(STRING, encode_string(value), value)


def cl_public_key(public_key: str) -> CLValue:
    key = normalize_public_key(public_key)
    return CLValue(PUBLIC_KEY, bytes.fromhex(key), key)


def cl_byte_array(value: bytes) -> CLValue:
    return CLValue(byte_array_type(len(value)), value, value.hex())


def cl_bytes(value: bytes) -> CLValue:
    return CLValue(LIST_U8, encode_bytes(value), None)


def cl_any(value: bytes) -> CLValue:
    """Opaque bytes, used for contract-defined struct types."""
    return CLValue(ANY, value, None)


class RuntimeArgs:
    """Ordered named arguments of a contract call."""

    def __init__(self, args: dict[str, CLValue] | None = None) -> None:
        self._args: dict[str, CLValue] = dict(args or {})

    def __len__(self) -> int:
        return len(self._args)

    def __getitem__(self, name: str) -> CLValue:
        return self._args[name]

    def __contains__(self, name: object) -> bool:
        return name in self._args

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuntimeArgs):
            return NotImplemented
        return list(self._args.items()) == list(other._args.items())

    def __repr__(self) -> str:
        return f"RuntimeArgs({list(self._args)})"

    def names(self) -> list[str]:
        return list(self._args)

    def to_bytes(self) -> bytes:
        out = bytearray(encode_u32(len(self._args)))
        for name, value in self._args.items():
            out += encode_string(name)
            out += value.to_bytes()
        return bytes(out)

    def to_json(self) -> list[list[Any]]:
        return [[name, value.to_json()] for name, value in self._args.items()]


__all__ = [
    "ANY",
    "LIST_U8",
    "PUBLIC_KEY",
    "STRING",
    "U512",
    "U64",
    "U8",
    "CLType",
    "CLValue",
    "RuntimeArgs",
    "byte_array_type",
    "cl_any",
    "cl_byte_array",
    "cl_bytes",
    "cl_public_key",
    "cl_string",
    "cl_u512",
    "cl_u64",
    "encode_bool",
    "encode_bytes",
    "encode_public_key",
    "encode_string",
    "encode_u32",
    "encode_u512",
    "encode_u64",
    "encode_u8",
]
