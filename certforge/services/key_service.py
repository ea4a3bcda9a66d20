"""
Key generation service for CA and leaf key pairs.
"""
import logging

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from ..models.config import MIN_RSA_KEY_BITS
from ..models.errors import CryptoFailure
from ..models.pki import KeyPair

RSA_PUBLIC_EXPONENT = 65537

EC_CURVES = {
    256: ec.SECP256R1,
    384: ec.SECP384R1,
    521: ec.SECP521R1,
}


class KeyGenerator:
    """Produces RSA or EC key pairs of a requested strength."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def generate(self, algorithm: str = "RSA", strength_bits: int = 2048) -> KeyPair:
        """
        Generate a new key pair.

        Args:
            algorithm: "RSA" or "EC"
            strength_bits: RSA modulus size, or EC curve size (256, 384, 521)

        Returns:
            KeyPair holding the private and public key

        Raises:
            CryptoFailure: If the algorithm is unknown, the strength is unsafe,
                or the backend cannot produce a key
        """
        algorithm = (algorithm or "").upper()
        curve = None

        if algorithm == "RSA":
            if not isinstance(strength_bits, int) or strength_bits < MIN_RSA_KEY_BITS:
                raise CryptoFailure(
                    f"RSA keys must be at least {MIN_RSA_KEY_BITS} bits, got {strength_bits}"
                )
        elif algorithm == "EC":
            curve = EC_CURVES.get(strength_bits)
            if curve is None:
                raise CryptoFailure(
                    f"unsupported EC strength {strength_bits}; expected one of {sorted(EC_CURVES)}"
                )
        else:
            raise CryptoFailure(f"unsupported key algorithm: {algorithm!r}")

        try:
            if curve is None:
                private_key = rsa.generate_private_key(
                    public_exponent=RSA_PUBLIC_EXPONENT,
                    key_size=strength_bits
                )
            else:
                private_key = ec.generate_private_key(curve())
        except (UnsupportedAlgorithm, ValueError, OSError) as e:
            raise CryptoFailure(f"{algorithm}-{strength_bits} key generation failed: {e}") from e

        self.logger.debug(f"Generated {algorithm}-{strength_bits} key pair")
        return KeyPair(
            private_key=private_key,
            public_key=private_key.public_key(),
            algorithm=algorithm,
            strength_bits=strength_bits
        )
