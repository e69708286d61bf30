"""
Configuration constants for the SentinelVault engine.
"""

import os

# Application Metadata
APP_VERSION = "1.0.0"  # Use: Current version of the vault engine. Type: str. Range: Semantic versioning string (e.g., "1.0.0")
APP_NAME = "SentinelVault"  # Use: Name of the engine, used in CLI help and log messages. Type: str. Range: Any valid string.
APP_DISCLAIMER = """  # Use: Notice shown in the command line help. Type: str (multi-line). Range: Any valid string.
Secrets are encrypted locally with a key derived from your passphrase.
A forgotten passphrase cannot be recovered and no copy of it is kept.
"""

# Security Settings
SALT_SIZE = 16  # Use: Size of the per-vault key derivation salt in bytes. Type: int. Range: At least 16 bytes (128 bits).
KEY_SIZE = 32  # Use: Size of the derived encryption key in bytes. Corresponds to AES-256. Type: int. Range: 32 bytes.
NONCE_SIZE = 12  # Use: Size of the AES-GCM nonce in bytes, fresh for every seal. Type: int. Range: 12 bytes (96 bits) is the recommended size for GCM.
TAG_SIZE = 16  # Use: Size of the AES-GCM authentication tag in bytes. Type: int. Range: 16 bytes (128 bits).
KDF_ARGON2ID = "argon2id"  # Use: Identifier of the Argon2id key derivation function. Type: str. Range: "argon2id"
KDF_PBKDF2_SHA256 = "pbkdf2-sha256"  # Use: Identifier of the PBKDF2-HMAC-SHA256 key derivation function. Type: str. Range: "pbkdf2-sha256"
DEFAULT_KDF = KDF_ARGON2ID  # Use: Key derivation function used for new vaults. Type: str. Range: KDF_ARGON2ID or KDF_PBKDF2_SHA256.
ARGON2_TIME_COST = 2  # Use: Argon2id time cost parameter. Controls the number of iterations. Type: int. Range: Typically 1 to 10.
ARGON2_MEMORY_COST = 65536  # Use: Argon2id memory cost parameter in KiB. Type: int. Range: At least 8 * ARGON2_PARALLELISM; 65536 (64 MB) recommended.
ARGON2_PARALLELISM = 4  # Use: Argon2id parallelism parameter (lanes). Type: int. Range: Typically 1 to 8.
PBKDF2_ITERATIONS = 310000  # Use: Number of PBKDF2-HMAC-SHA256 iterations for new PBKDF2 vaults. Type: int. Range: At least PBKDF2_MIN_ITERATIONS.
PBKDF2_MIN_ITERATIONS = 100000  # Use: Lowest PBKDF2 iteration count accepted when deriving a key. Type: int. Range: Positive integer, 100,000 or more.
ARGON2_MAX_TIME_COST = 16  # Use: Highest Argon2id time cost accepted from a vault header before authentication. Type: int. Range: At least ARGON2_TIME_COST.
ARGON2_MAX_MEMORY_COST = 1048576  # Use: Highest Argon2id memory cost in KiB accepted from a vault header (1 GiB). Type: int. Range: At least ARGON2_MEMORY_COST.
ARGON2_MAX_PARALLELISM = 16  # Use: Highest Argon2id parallelism accepted from a vault header. Type: int. Range: At least ARGON2_PARALLELISM.
PBKDF2_MAX_ITERATIONS = 10000000  # Use: Highest PBKDF2 iteration count accepted from a vault header. Type: int. Range: At least PBKDF2_ITERATIONS.
PASSPHRASE_MIN_LENGTH = 12  # Use: Minimum length the CLI accepts for new master passphrases. Type: int. Range: Typically 8 to 16, higher is better.

# Vault File Format
VAULT_MAGIC = b"SNVT"  # Use: Magic bytes at the start of every persisted vault blob. Type: bytes. Range: Exactly 4 bytes.
VAULT_FORMAT_VERSION = 1  # Use: Version of the binary blob layout written by this release. Type: int. Range: Positive integer.
RECORD_SCHEMA_VERSION = 1  # Use: Version of the JSON record schema inside the ciphertext. Type: int. Range: Positive integer.
VAULT_FILE_SUFFIX = ".vault"  # Use: File extension appended to the storage key to form the blob filename. Type: str. Range: Any valid filename suffix.
VAULT_TEMP_SUFFIX = ".tmp"  # Use: Suffix of the temporary file written before the atomic replace. Type: str. Range: Any valid filename suffix.
STORAGE_KEY_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$"  # Use: Regular expression a storage key must match; keeps keys inside the vault directory. Type: str. Range: Valid regular expression.
DEFAULT_STORAGE_KEY = "default"  # Use: Storage key used when the caller does not choose one. Type: str. Range: Must match STORAGE_KEY_PATTERN.
BUSY_POLICY_WAIT = "wait"  # Use: VaultStore policy that queues a concurrent save behind the one in flight. Type: str. Range: "wait"
BUSY_POLICY_FAIL = "fail"  # Use: VaultStore policy that rejects a concurrent save with Busy. Type: str. Range: "fail"

# Auto-lock Settings
AUTO_LOCK_TIMEOUT_DEFAULT_MINUTES = 5  # Use: Default inactivity timeout in minutes before the scheduler locks the vault. Type: int. Range: 0 (disabled) to AUTO_LOCK_TIMEOUT_MAX_MINUTES.
AUTO_LOCK_TIMEOUT_MAX_MINUTES = 60  # Use: Maximum configurable auto-lock timeout in minutes. Type: int. Range: Positive integer.
AUTO_LOCK_TIMEOUT_DEFAULT = AUTO_LOCK_TIMEOUT_DEFAULT_MINUTES * 60  # Use: Default auto-lock timeout in seconds. Derived from AUTO_LOCK_TIMEOUT_DEFAULT_MINUTES. Type: int. Range: Derived value.

# Password Generator Settings
PASSWORD_GENERATOR_DEFAULT_LENGTH = 16  # Use: Default length for generated passwords. Type: int. Range: PASSWORD_GENERATOR_MIN_LENGTH to PASSWORD_GENERATOR_MAX_LENGTH.
PASSWORD_GENERATOR_MIN_LENGTH = 8  # Use: Minimum allowed length for generated passwords. Type: int. Range: Positive integer.
PASSWORD_GENERATOR_MAX_LENGTH = 128  # Use: Maximum allowed length for generated passwords. Type: int. Range: Positive integer.
PASSWORD_GENERATOR_AMBIGUOUS_CHARS = "0O1lI"  # Use: Characters considered ambiguous and can be excluded from generated passwords. Type: str. Range: Any string of characters.

# Vault Management Settings
MAX_RECENT_VAULTS = 10  # Use: Maximum number of recently opened storage keys to remember. Type: int. Range: Positive integer.

# File and Directory Names
CONFIG_DIR_NAME = ".sentinelvault"  # Use: Name of the hidden directory within the user's home directory where vault blobs are stored. Type: str. Range: Any valid directory name.
CONFIG_DIR_ENV = "SENTINELVAULT_HOME"  # Use: Environment variable that overrides the vault directory. Type: str. Range: Any environment variable name.
CONFIG_DIR = os.environ.get(CONFIG_DIR_ENV) or os.path.join(os.path.expanduser("~"), CONFIG_DIR_NAME)  # Use: Directory holding vault blobs and the recent-vaults list. Type: str. Range: Any writable directory path.
RECENT_VAULTS_FILE = "recent_vaults.txt"  # Use: Filename for storing the list of recently opened storage keys. Type: str. Range: Any valid filename.

# Logging
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"  # Use: Format string passed to logging.basicConfig by the command line front end. Type: str. Range: Valid logging format string.

# Engine State Machine States
STATE_LOCKED = "LOCKED"  # Use: No key in memory; only create and unlock are allowed. Type: str. Range: Any string.
STATE_UNLOCKED = "UNLOCKED"  # Use: Key and decrypted records held in memory; reads and mutations allowed. Type: str. Range: Any string.
STATE_CORRUPT = "CORRUPT"  # Use: The persisted blob could not be read; the vault is refused until the blob is replaced or reset. Type: str. Range: Any string.
