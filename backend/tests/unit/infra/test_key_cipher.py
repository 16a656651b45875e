# tests/unit/infra/test_key_cipher.py
from __future__ import annotations

import hashlib
import os
from base64 import b64decode, b64encode

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from eth_account import Account

from custody.infra.crypto.key_cipher import KeyCipher
from custody.infra.crypto.wallet_provisioner import LocalWalletProvisioner
from custody.services._shared.ports.key_decryptor import DecryptionError
from tests.factories.wallet import DEV_PRIVATE_KEY

SECRET = "cipher-test-secret"


@pytest.fixture(scope="module")
def cipher() -> KeyCipher:
    return KeyCipher(SECRET)


def _legacy_blob(secret: str, plain: str) -> str:
    key = hashlib.sha256(secret.encode()).digest()
    iv = os.urandom(12)
    sealed = AESGCM(key).encrypt(iv, plain.encode(), None)
    ciphertext, tag = sealed[:-16], sealed[-16:]
    return ".".join(b64encode(p).decode() for p in (iv, tag, ciphertext))


def test_encrypt_produces_v2_blob(cipher):
    blob = cipher.encrypt(DEV_PRIVATE_KEY)
    parts = blob.split(".")
    assert parts[0] == "v2"
    assert len(parts) == 5
    assert DEV_PRIVATE_KEY not in blob
    assert cipher.decrypt(blob) == DEV_PRIVATE_KEY


def test_salt_and_iv_are_per_record(cipher):
    assert cipher.encrypt(DEV_PRIVATE_KEY) != cipher.encrypt(DEV_PRIVATE_KEY)


def test_decrypts_legacy_three_segment_blob(cipher):
    assert cipher.decrypt(_legacy_blob(SECRET, DEV_PRIVATE_KEY)) == DEV_PRIVATE_KEY


@pytest.mark.parametrize("blob", ["", "only-one", "a.b", "v2.a.b.c", "v2.a..c.d", "a.b.c.d"])
def test_malformed_blobs(cipher, blob):
    with pytest.raises(DecryptionError, match="Encrypted key is malformed"):
        cipher.decrypt(blob)


def test_wrong_secret_cannot_decrypt(cipher):
    blob = cipher.encrypt(DEV_PRIVATE_KEY)
    with pytest.raises(DecryptionError, match="Unable to decrypt private key"):
        KeyCipher("another-secret").decrypt(blob)


def test_tampered_ciphertext_is_rejected(cipher):
    version, salt, iv, tag, ciphertext = cipher.encrypt(DEV_PRIVATE_KEY).split(".")
    flipped = b64encode(bytes(b ^ 0x01 for b in b64decode(ciphertext)))
    with pytest.raises(DecryptionError, match="Unable to decrypt private key"):
        cipher.decrypt(".".join([version, salt, iv, tag, flipped.decode()]))


def test_invalid_base64_is_not_decryptable(cipher):
    with pytest.raises(DecryptionError, match="Unable to decrypt private key"):
        cipher.decrypt("v2.@@@.@@@.@@@.@@@")


def test_encrypt_requires_plain_key(cipher):
    with pytest.raises(ValueError, match="Plain key must be provided for encryption"):
        cipher.encrypt("")


def test_secret_is_required():
    with pytest.raises(ValueError):
        KeyCipher("")


def test_provisioned_wallet_key_opens_to_its_address(cipher):
    wallet = LocalWalletProvisioner(cipher).provision()

    assert wallet.encrypted_private_key.startswith("v2.")
    private_key = cipher.decrypt(wallet.encrypted_private_key)
    assert Account.from_key(private_key).address == wallet.address


def test_provisioned_wallets_are_distinct(cipher):
    provisioner = LocalWalletProvisioner(cipher)
    assert provisioner.provision().address != provisioner.provision().address
