"""
Exception classes raised by the vault engine and its components.
"""


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class AlreadyExists(VaultError):
    """Raised when creating a vault whose blob is already persisted"""
    pass


class NotInitialized(VaultError):
    """Raised when unlocking a vault that has never been created"""
    pass


class WrongPassphrase(VaultError):
    """Raised when the passphrase does not open the persisted vault"""
    pass


class AuthenticationFailed(VaultError):
    """Raised by the cipher when a ciphertext, tag or header fails authentication.

    Internal to the crypto layer. The engine reports it as WrongPassphrase.
    """
    pass


class MalformedRecords(VaultError):
    """Raised when decrypted bytes do not decode to a valid record set"""
    pass


class UnsupportedVersion(MalformedRecords):
    """Raised when the record payload was written by a newer release.

    Unlike other malformed payloads this does not mark the vault corrupt.
    """
    pass


class CorruptVault(VaultError):
    """Raised when the persisted blob cannot be parsed or its records cannot be decoded.

    The engine refuses further use of the vault until the blob is replaced
    or the vault is reset.
    """
    pass


class VaultLocked(VaultError):
    """Raised when an operation needs an unlocked vault"""
    pass


class NotFound(VaultError, KeyError):
    """Raised when a record id is not present in the vault"""

    def __str__(self):
        # KeyError quotes its argument; keep the plain message
        return Exception.__str__(self)


class VaultIOError(VaultError, OSError):
    """Raised when the blob cannot be read from or written to storage"""
    pass


class Busy(VaultError):
    """Raised when a save is attempted while another is in flight and the store does not queue"""
    pass


class KeyDerivationError(VaultError, ValueError):
    """Raised when key derivation input is malformed"""
    pass
