"""
Error taxonomy for certificate issuance.
"""


class CertForgeError(Exception):
    """Base class for all issuance errors."""


class CryptoFailure(CertForgeError):
    """Key generation or signing failed (bad algorithm, weak key, no entropy)."""


class InvalidRequestError(CertForgeError):
    """Caller supplied input that can never produce a valid certificate."""


class InvalidSubjectAltName(InvalidRequestError):
    """A DNS or IP subject-alternative-name entry is malformed or missing."""


class InvalidDistinguishedName(InvalidRequestError):
    """A distinguished name attribute is missing or malformed."""


class InvalidValidityPeriod(InvalidRequestError):
    """Requested validity window is empty or outlives the issuer."""


class InvalidExportOptions(InvalidRequestError):
    """Export bundle options (password, friendly name) are unusable."""


class ExtensionConflict(CertForgeError):
    """A leaf request asked for CA rights."""


class SerialCollision(CertForgeError):
    """No unique serial number could be assigned within the retry budget."""


class InternalInconsistency(CertForgeError):
    """An issued artifact violates a structural invariant."""


class ChainValidationError(CertForgeError):
    """A certificate does not validate against the given trust root."""
