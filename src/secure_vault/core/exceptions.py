"""
Vault Exception Classes
"""


class VaultException(Exception):
    """Base exception for vault operations"""
    pass


class InvalidCredential(VaultException):
    """Raised when the master secret is empty or malformed"""
    pass


class AuthenticationFailed(VaultException):
    """Raised when a session cannot be established for the given identity"""
    pass


class DecryptionFailed(VaultException):
    """Raised when an AEAD authentication tag does not verify"""
    pass


class VaultCorruptOrWrongKey(DecryptionFailed):
    """Raised when a stored envelope cannot be opened with the session key.

    The message stays generic on purpose: a wrong master password, a
    corrupted row and a tampered row all look the same to the caller.
    """

    def __init__(self, message: str = "Unable to decrypt vault data. Please check your master password."):
        super().__init__(message)


class NotAuthenticated(VaultException):
    """Raised when a vault operation runs without a live session key"""
    pass


class EmptyCharset(VaultException):
    """Raised when a generator policy leaves no usable characters"""
    pass


class InvalidPolicy(VaultException):
    """Raised when a generator policy is out of bounds"""
    pass


class ImportFormatInvalid(VaultException):
    """Raised when an import document is not valid JSON of the export shape"""
    pass


class MalformedEnvelope(VaultException):
    """Raised when an envelope's hex fields or sizes are invalid"""
    pass


class StoreUnavailable(VaultException):
    """Raised when the external store call fails"""
    pass


class RecordNotFound(VaultException, KeyError):
    """Raised when an update or delete names a record id the vault does not hold"""
    pass
