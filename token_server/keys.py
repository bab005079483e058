"""
RSA signing keys for access tokens: one default key, optional per-region keys, and
optional secondary (retired) keys that stay in the JWKS for verification only.
Keys are loaded from PEM files, or generated and saved when the file is missing.
"""
import base64
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, generate_private_key

logger = logging.getLogger(__name__)

_KEY_BITS = 2048


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def key_id_for(private_key: RSAPrivateKey) -> str:
    """Stable kid: truncated SHA-256 of the public key DER, so a key keeps its kid across restarts."""
    der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest()[:16]


@dataclass(frozen=True)
class SigningKey:
    private_key: RSAPrivateKey
    kid: str

    def public_jwk(self) -> dict:
        numbers = self.private_key.public_key().public_numbers()
        return {
            "kty": "RSA",
            "kid": self.kid,
            "alg": "RS256",
            "use": "sig",
            "n": _b64url_uint(numbers.n),
            "e": _b64url_uint(numbers.e),
        }


def load_or_create_signing_key(path: str) -> SigningKey:
    """Load an RSA private key from path, or generate one and try to save it there."""
    p = Path(path)
    if p.exists():
        pem = p.read_bytes()
        key = serialization.load_pem_private_key(pem, password=None)
        return SigningKey(key, key_id_for(key))
    key = generate_private_key(public_exponent=65537, key_size=_KEY_BITS)
    try:
        p.write_bytes(
            key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
        logger.info("Generated and saved signing key to %s", path)
    except OSError as e:
        logger.warning("Could not save signing key to %s: %s", path, e)
    return SigningKey(key, key_id_for(key))


def load_secondary_key(path: str) -> SigningKey | None:
    """Secondary keys are never generated; a missing or unreadable file is skipped."""
    p = Path(path)
    if not p.exists():
        logger.warning("Secondary signing key %s not found; skipping", path)
        return None
    try:
        key = serialization.load_pem_private_key(p.read_bytes(), password=None)
    except ValueError as e:
        logger.warning("Failed to load secondary signing key from %s: %s", path, e)
        return None
    return SigningKey(key, key_id_for(key))


@dataclass
class KeyRing:
    default: SigningKey
    regional: dict[str, SigningKey]
    secondary: list[SigningKey]

    @classmethod
    def load(
        cls,
        default_path: str,
        regional_paths: dict[str, str] | None = None,
        secondary_paths: list[str] | None = None,
    ) -> "KeyRing":
        regional = {
            region: load_or_create_signing_key(path)
            for region, path in (regional_paths or {}).items()
        }
        secondary = [k for k in (load_secondary_key(p) for p in secondary_paths or []) if k]
        return cls(default=load_or_create_signing_key(default_path), regional=regional, secondary=secondary)

    def all_keys(self) -> list[SigningKey]:
        keys: dict[str, SigningKey] = {self.default.kid: self.default}
        for key in [*self.regional.values(), *self.secondary]:
            keys.setdefault(key.kid, key)
        return list(keys.values())

    def public_key_for(self, kid: str):
        """Public key for the given kid, or None if unknown. Used to verify admin bearer tokens."""
        for key in self.all_keys():
            if key.kid == kid:
                return key.private_key.public_key()
        return None

    def jwks(self) -> dict:
        return {"keys": [key.public_jwk() for key in self.all_keys()]}
