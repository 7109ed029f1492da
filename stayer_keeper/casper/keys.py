"""Keeper signing key (Ed25519 or secp256k1 PEM)."""

from enum import StrEnum
from pathlib import Path
from typing import Self

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from stayer_keeper.helpers.logging import get_logger


logger = get_logger(__name__)

SECP256K1_ORDER = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16
)


class KeyAlgorithm(StrEnum):
    """Casper key algorithm tags (the first byte of keys and signatures)."""

    ED25519 = "01"
    SECP256K1 = "02"


class KeeperSigner:
    """Signs deploy hashes with the keeper account key."""

    def __init__(
        self, private_key: ed25519.Ed25519PrivateKey | ec.EllipticCurvePrivateKey
    ) -> None:
        """Initialize the signer.

        Raises:
            ValueError: If the key is neither Ed25519 nor secp256k1
        """
        if isinstance(private_key, ed25519.Ed25519PrivateKey):
            self.algorithm = KeyAlgorithm.ED25519
            raw = private_key.public_key().public_bytes(
                serialization.Encoding.Raw, serialization.PublicFormat.Raw
            )
        elif isinstance(private_key, ec.EllipticCurvePrivateKey) and isinstance(
            private_key.curve, ec.SECP256K1
        ):
            self.algorithm = KeyAlgorithm.SECP256K1
            raw = private_key.public_key().public_bytes(
                serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
            )
        else:
            msg = f"Unsupported keeper key type: {type(private_key).__name__}"
            raise ValueError(msg)

        self._private_key = private_key
        self.public_key_bytes = bytes.fromhex(self.algorithm.value) + raw

    @classmethod
    def from_pem(cls, pem: bytes) -> Self:
        private_key = serialization.load_pem_private_key(pem, password=None)
        if not isinstance(
            private_key, (ed25519.Ed25519PrivateKey, ec.EllipticCurvePrivateKey)
        ):
            msg = f"Unsupported keeper key type: {type(private_key).__name__}"
            raise ValueError(msg)
        return cls(private_key)

    @classmethod
    def from_pem_file(cls, path: str | Path) -> Self:
        """Load the keeper key from a PEM file.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        key_path = Path(path).resolve()
        if not key_path.exists():
            msg = f"Private key file not found at: {key_path}"
            raise FileNotFoundError(msg)
        signer = cls.from_pem(key_path.read_bytes())
        logger.info(
            "Loaded keeper %s key %s from %s",
            signer.algorithm.name,
            signer.public_key_hex,
            key_path,
        )
        return signer

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    def sign(self, message: bytes) -> bytes:
        """Sign ``message`` and return the tagged 65-byte Casper signature."""
        if isinstance(self._private_key, ed25519.Ed25519PrivateKey):
            signature = self._private_key.sign(message)
        else:
            der = self._private_key.sign(message, ec.ECDSA(hashes.SHA256()))
            r, s = decode_dss_signature(der)
            # Casper nodes only accept low-s signatures
            if s > SECP256K1_ORDER // 2:
                s = SECP256K1_ORDER - s
            signature = r.to_bytes(32, "big") + s.to_bytes(32, "big")
        return bytes.fromhex(self.algorithm.value) + signature


__all__ = ["KeeperSigner", "KeyAlgorithm"]
