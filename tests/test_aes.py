"""Payload encryption: round trip, tamper detection, wrong keys, decode errors."""

import pytest

from fogroom.common.errors import DecodeError, DecryptionError
from fogroom.common.protocol import Payload
from fogroom.common.utils import b64d, b64e
from fogroom.crypto import aes
from fogroom.crypto.aes import IV_LENGTH, PayloadCipher
from fogroom.crypto.keys import generate_credentials


@pytest.fixture
def key():
    return generate_credentials().secret_key


def flip_bit(data: str, index: int) -> str:
    raw = bytearray(b64d(data))
    raw[index // 8] ^= 1 << (index % 8)
    return b64e(bytes(raw))


def test_alice_scenario():
    creds = generate_credentials()
    payload = Payload(sender="Alice", content="hi", type="text")
    encrypted = aes.encrypt(payload, creds.secret_key)
    assert aes.decrypt(encrypted.ciphertext, encrypted.iv, creds.secret_key) == payload


@pytest.mark.parametrize("payload", [
    Payload(sender="", content="", type="system"),
    Payload(sender="Bob", content="multi\nline ünïcødé 🙂", type="text"),
    Payload(sender="Eve", content="x" * 10_000, type="text", public_key="cGs=", signature="c2ln"),
])
def test_round_trip(key, payload):
    encrypted = aes.encrypt(payload, key)
    assert aes.decrypt(encrypted.ciphertext, encrypted.iv, key) == payload


def test_wire_shape(key):
    encrypted = aes.encrypt(Payload(sender="a", content="b", type="text"), key)
    assert len(b64d(encrypted.iv)) == IV_LENGTH
    # JSON body plus the 16-byte tag
    plaintext_len = len(b'{"sender":"a","content":"b","type":"text"}')
    assert len(b64d(encrypted.ciphertext)) == plaintext_len + 16


def test_fresh_nonce_per_call(key):
    cipher = PayloadCipher(key)
    payload = Payload(sender="a", content="same", type="text")
    first, second = cipher.encrypt(payload), cipher.encrypt(payload)
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext


def test_canonical_json_omits_missing_signature_fields():
    body = Payload(sender="a", content="b", type="text").canonical_bytes()
    assert body == b'{"sender":"a","content":"b","type":"text"}'
    signed = Payload(sender="a", content="b", type="text", public_key="P", signature="S").canonical_bytes()
    assert signed == b'{"sender":"a","content":"b","type":"text","publicKey":"P","signature":"S"}'


class TestTampering:
    def test_every_ciphertext_bit(self, key):
        encrypted = aes.encrypt(Payload(sender="a", content="tamper me", type="text"), key)
        bits = len(b64d(encrypted.ciphertext)) * 8
        for index in range(0, bits, 7):
            with pytest.raises(DecryptionError):
                aes.decrypt(flip_bit(encrypted.ciphertext, index), encrypted.iv, key)

    def test_every_iv_bit(self, key):
        encrypted = aes.encrypt(Payload(sender="a", content="tamper me", type="text"), key)
        for index in range(IV_LENGTH * 8):
            with pytest.raises(DecryptionError):
                aes.decrypt(encrypted.ciphertext, flip_bit(encrypted.iv, index), key)

    def test_truncated_ciphertext(self, key):
        encrypted = aes.encrypt(Payload(sender="a", content="b", type="text"), key)
        with pytest.raises(DecryptionError):
            aes.decrypt(b64e(b64d(encrypted.ciphertext)[:10]), encrypted.iv, key)

    def test_wrong_iv_length(self, key):
        encrypted = aes.encrypt(Payload(sender="a", content="b", type="text"), key)
        with pytest.raises(DecryptionError):
            aes.decrypt(encrypted.ciphertext, b64e(b"\x00" * 16), key)


def test_wrong_key_is_rejected(key):
    encrypted = aes.encrypt(Payload(sender="a", content="secret", type="text"), key)
    for _ in range(5):
        other = generate_credentials().secret_key
        with pytest.raises(DecryptionError):
            aes.decrypt(encrypted.ciphertext, encrypted.iv, other)


def test_malformed_base64_is_a_decode_error(key):
    encrypted = aes.encrypt(Payload(sender="a", content="b", type="text"), key)
    with pytest.raises(DecodeError):
        aes.decrypt("%%%", encrypted.iv, key)
    with pytest.raises(DecodeError):
        aes.decrypt(encrypted.ciphertext, "%%%", key)


def test_authentic_but_non_payload_json_is_a_decode_error(key):
    cipher = PayloadCipher(key)
    # Reach under the payload layer to seal arbitrary bytes with a valid tag
    iv = b"\x01" * IV_LENGTH
    for body in (b"not json", b'{"sender": "a"}', b'{"sender":"a","content":"b","type":"emoji"}', b"\xff\xfe"):
        sealed = cipher._backend.aead_encrypt(cipher._key, iv, body)
        with pytest.raises(DecodeError):
            cipher.decrypt(b64e(sealed), b64e(iv))


def test_bad_secret_key_is_rejected():
    with pytest.raises(DecodeError):
        PayloadCipher("short")
