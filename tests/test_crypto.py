# Tests for key derivation and the AES-256-GCM cipher
# Covers: KeyDerivation, AuthenticatedCipher, wipe, tamper detection, nonce reuse

import os

import pytest

from sentinelvault import config
from sentinelvault.crypto import (AuthenticatedCipher, KdfParams, KeyDerivation,
                                  NonceReuse, wipe)
from sentinelvault.errors import AuthenticationFailed, KeyDerivationError

from .conftest import FAST_KDF


# ── Helpers ───────────────────────────────────────────────────────────


@pytest.fixture
def cipher():
    return AuthenticatedCipher()


@pytest.fixture
def key():
    return bytearray(os.urandom(config.KEY_SIZE))


def flip_bit(data: bytes, bit: int) -> bytes:
    out = bytearray(data)
    out[bit // 8] ^= 1 << (bit % 8)
    return bytes(out)


# ── KeyDerivation ────────────────────────────────────────────────────


class TestKeyDerivation:
    def test_derive_is_deterministic(self, kdf):
        salt = kdf.generate_salt()
        assert kdf.derive("correct-horse", salt) == kdf.derive("correct-horse", salt)

    def test_key_is_32_byte_bytearray(self, kdf):
        key = kdf.derive("correct-horse", kdf.generate_salt())
        assert isinstance(key, bytearray)
        assert len(key) == config.KEY_SIZE

    def test_str_and_utf8_bytes_agree(self, kdf):
        salt = kdf.generate_salt()
        assert kdf.derive("pässword", salt) == kdf.derive("pässword".encode("utf-8"), salt)

    def test_different_salt_gives_different_key(self, kdf):
        assert kdf.derive("pw", kdf.generate_salt()) != kdf.derive("pw", kdf.generate_salt())

    def test_different_passphrase_gives_different_key(self, kdf):
        salt = kdf.generate_salt()
        assert kdf.derive("one", salt) != kdf.derive("two", salt)

    def test_params_change_the_key(self, kdf):
        salt = kdf.generate_salt()
        other = KdfParams(time_cost=2, memory_cost=8, parallelism=1)
        assert kdf.derive("pw", salt) != kdf.derive("pw", salt, other)

    def test_salt_is_random_16_bytes(self, kdf):
        a, b = kdf.generate_salt(), kdf.generate_salt()
        assert len(a) == 16
        assert a != b

    def test_empty_passphrase_rejected(self, kdf):
        with pytest.raises(KeyDerivationError):
            kdf.derive("", kdf.generate_salt())

    def test_short_salt_rejected(self, kdf):
        with pytest.raises(KeyDerivationError):
            kdf.derive("pw", b"short")

    def test_unknown_algorithm_rejected(self, kdf):
        with pytest.raises(KeyDerivationError):
            kdf.derive("pw", kdf.generate_salt(), KdfParams(algorithm="md5"))

    def test_invalid_argon2_costs_rejected(self, kdf):
        with pytest.raises(KeyDerivationError):
            kdf.derive("pw", kdf.generate_salt(), KdfParams(time_cost=1, memory_cost=1, parallelism=4))

    def test_pbkdf2_needs_minimum_iterations(self, kdf):
        params = KdfParams(algorithm=config.KDF_PBKDF2_SHA256, iterations=1000)
        with pytest.raises(KeyDerivationError):
            kdf.derive("pw", kdf.generate_salt(), params)

    def test_pbkdf2_derives(self):
        params = KdfParams(algorithm=config.KDF_PBKDF2_SHA256,
                           iterations=config.PBKDF2_MIN_ITERATIONS)
        kdf = KeyDerivation(params)
        salt = kdf.generate_salt()
        key = kdf.derive("pw", salt)
        assert len(key) == config.KEY_SIZE
        assert key != KeyDerivation(FAST_KDF).derive("pw", salt)

    def test_default_params_are_argon2id(self):
        params = KeyDerivation().params
        assert params.algorithm == config.KDF_ARGON2ID
        assert params.memory_cost == config.ARGON2_MEMORY_COST


# ── AuthenticatedCipher ──────────────────────────────────────────────


class TestSealOpen:
    @pytest.mark.parametrize("plaintext", [b"", b"x", b"secret payload", os.urandom(4096)])
    def test_roundtrip(self, cipher, key, plaintext):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, plaintext)
        assert len(tag) == config.TAG_SIZE
        assert cipher.open(key, nonce, ciphertext, tag) == plaintext

    def test_roundtrip_with_associated_data(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data", b"header")
        assert cipher.open(key, nonce, ciphertext, tag, b"header") == b"data"

    def test_ciphertext_hides_plaintext(self, cipher, key):
        plaintext = b"A" * 64
        ciphertext, _ = cipher.seal(key, cipher.generate_nonce(), plaintext)
        assert plaintext not in ciphertext

    def test_open_returns_wipeable_bytearray(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data")
        assert isinstance(cipher.open(key, nonce, ciphertext, tag), bytearray)


class TestTamperDetection:
    def test_every_ciphertext_bit_flip_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"sixteen byte msg")
        for bit in range(len(ciphertext) * 8):
            with pytest.raises(AuthenticationFailed):
                cipher.open(key, nonce, flip_bit(ciphertext, bit), tag)

    def test_every_tag_bit_flip_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"sixteen byte msg")
        for bit in range(len(tag) * 8):
            with pytest.raises(AuthenticationFailed):
                cipher.open(key, nonce, ciphertext, flip_bit(tag, bit))

    def test_associated_data_change_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data", b"header-v1")
        with pytest.raises(AuthenticationFailed):
            cipher.open(key, nonce, ciphertext, tag, b"header-v2")

    def test_wrong_key_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data")
        with pytest.raises(AuthenticationFailed):
            cipher.open(bytearray(os.urandom(32)), nonce, ciphertext, tag)

    def test_wrong_nonce_fails(self, cipher, key):
        ciphertext, tag = cipher.seal(key, cipher.generate_nonce(), b"data")
        with pytest.raises(AuthenticationFailed):
            cipher.open(key, cipher.generate_nonce(), ciphertext, tag)

    def test_truncated_tag_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data")
        with pytest.raises(AuthenticationFailed):
            cipher.open(key, nonce, ciphertext, tag[:8])


class TestNonceHandling:
    def test_seal_refuses_reused_nonce(self, cipher, key):
        nonce = cipher.generate_nonce()
        cipher.seal(key, nonce, b"first")
        with pytest.raises(NonceReuse):
            cipher.seal(key, nonce, b"second")

    def test_remembered_nonce_is_not_reused(self, cipher, key):
        nonce = os.urandom(config.NONCE_SIZE)
        cipher.remember(nonce)
        with pytest.raises(NonceReuse):
            cipher.seal(key, nonce, b"data")

    def test_reset_forgets_nonces(self, cipher, key):
        nonce = cipher.generate_nonce()
        cipher.seal(key, nonce, b"data")
        cipher.reset()
        cipher.seal(bytearray(os.urandom(32)), nonce, b"data")

    def test_generated_nonces_are_unique(self, cipher):
        nonces = {cipher.generate_nonce() for _ in range(100)}
        assert len(nonces) == 100
        assert all(len(n) == config.NONCE_SIZE for n in nonces)

    def test_bad_key_length(self, cipher):
        with pytest.raises(ValueError):
            cipher.seal(b"short", cipher.generate_nonce(), b"data")

    def test_bad_nonce_length(self, cipher, key):
        with pytest.raises(ValueError):
            cipher.seal(key, b"123", b"data")


class TestWipe:
    def test_wipe_bytearray(self):
        buf = bytearray(b"secret")
        wipe(buf)
        assert buf == bytearray(6)

    def test_wipe_writable_memoryview(self):
        buf = bytearray(b"secret")
        wipe(memoryview(buf))
        assert buf == bytearray(6)

    def test_wipe_ignores_immutable_bytes(self):
        data = b"secret"
        wipe(data)
        assert data == b"secret"
