"""
Platform-specific signature and cipher variants

- Feishu: AES-256-CBC with key = SHA256(encrypt_key), IV prefixed to the ciphertext
- Feishu: request signature sha256(timestamp + nonce + encrypt_key + body)
- DingTalk robot: base64(HMAC-SHA256(secret, "timestamp\\nsecret"))
- OneBot: X-Signature "sha1=" + HMAC-SHA1(secret, body)
- QQ official bot: HMAC-SHA256 validation handshake, Ed25519 event signatures
"""

import base64
import binascii
import hashlib
import hmac
import os
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from imbridge.errors import DecodeError, DecryptError, InvalidKeyError

BytesLike = Union[bytes, str]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, bytes):
        return value
    return (value or '').encode('utf-8')


def constant_time_equals(expected: str, actual: str) -> bool:
    if not expected or not actual:
        return False
    return hmac.compare_digest(expected.encode('utf-8'), actual.encode('utf-8'))


# ---------- Feishu ----------

def _feishu_cipher(encrypt_key: str, iv: bytes) -> Cipher:
    if not encrypt_key:
        raise InvalidKeyError("Feishu encryptKey is empty")
    key = hashlib.sha256(encrypt_key.encode('utf-8')).digest()
    return Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend())


def feishu_decrypt(encrypt_key: str, encrypt_str: str) -> str:
    """
    Decrypt a Feishu `encrypt` field

    Raises:
        InvalidKeyError / DecodeError / DecryptError
    """
    try:
        blob = base64.b64decode(encrypt_str, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecodeError(f"Ciphertext is not valid base64: {e}") from e

    if len(blob) < 32 or len(blob) % 16:
        raise DecryptError(f"Invalid Feishu ciphertext length {len(blob)}")

    decryptor = _feishu_cipher(encrypt_key, blob[:16]).decryptor()
    padded = decryptor.update(blob[16:]) + decryptor.finalize()

    unpadder = padding.PKCS7(128).unpadder()
    try:
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode('utf-8')
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptError(f"Failed to decrypt Feishu payload: {e}") from e


def feishu_encrypt(encrypt_key: str, plaintext: str, iv: bytes = None) -> str:
    """Inverse of feishu_decrypt"""
    iv = iv if iv is not None else os.urandom(16)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode('utf-8')) + padder.finalize()
    encryptor = _feishu_cipher(encrypt_key, iv).encryptor()
    return base64.b64encode(iv + encryptor.update(padded) + encryptor.finalize()).decode('ascii')


def feishu_signature(timestamp: str, nonce: str, encrypt_key: str, body: BytesLike) -> str:
    content = (timestamp or '') + (nonce or '') + (encrypt_key or '')
    return hashlib.sha256(content.encode('utf-8') + _to_bytes(body)).hexdigest()


# ---------- DingTalk ----------

def dingtalk_robot_sign(timestamp: str, secret: str) -> str:
    """Robot signature, used both for inbound callbacks and signed webhook URLs"""
    string_to_sign = f"{timestamp}\n{secret}"
    digest = hmac.new(secret.encode('utf-8'), string_to_sign.encode('utf-8'), hashlib.sha256).digest()
    return base64.b64encode(digest).decode('ascii')


# ---------- OneBot ----------

def onebot_signature(secret: str, body: BytesLike) -> str:
    digest = hmac.new(secret.encode('utf-8'), _to_bytes(body), hashlib.sha1).hexdigest()
    return f"sha1={digest}"


# ---------- QQ official bot ----------

def qqbot_validation_signature(secret: str, event_ts: str, plain_token: str) -> str:
    """Signature for the op=13 callback URL validation response"""
    message = f"{event_ts}{plain_token}".encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def qqbot_ed25519_key(secret: str) -> Ed25519PrivateKey:
    """
    Derive the Ed25519 key from the bot secret

    The seed is the secret repeated until it reaches 32 bytes, then truncated.
    """
    if not secret:
        raise InvalidKeyError("QQ bot secret is empty")
    seed = secret.encode('utf-8')
    while len(seed) < 32:
        seed = seed * 2
    return Ed25519PrivateKey.from_private_bytes(seed[:32])


def qqbot_sign_ed25519(secret: str, timestamp: str, body: BytesLike) -> str:
    key = qqbot_ed25519_key(secret)
    return key.sign(timestamp.encode('utf-8') + _to_bytes(body)).hex()


def qqbot_verify_ed25519(secret: str, timestamp: str, body: BytesLike, signature_hex: str) -> bool:
    """Verify X-Signature-Ed25519 over timestamp + raw body"""
    if not timestamp or not signature_hex:
        return False
    try:
        signature = bytes.fromhex(signature_hex)
    except ValueError:
        return False
    if len(signature) != 64 or signature[63] & 224 != 0:
        return False

    public_key = qqbot_ed25519_key(secret).public_key()
    try:
        public_key.verify(signature, timestamp.encode('utf-8') + _to_bytes(body))
        return True
    except InvalidSignature:
        return False


__all__ = [
    'constant_time_equals',
    'feishu_decrypt',
    'feishu_encrypt',
    'feishu_signature',
    'dingtalk_robot_sign',
    'onebot_signature',
    'qqbot_validation_signature',
    'qqbot_ed25519_key',
    'qqbot_sign_ed25519',
    'qqbot_verify_ed25519',
]
