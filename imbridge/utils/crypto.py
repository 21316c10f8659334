"""
WeCom / DingTalk Callback Cryptography

Both vendors share one scheme:
- SHA1 signature over the sorted (token, timestamp, nonce, encrypt) tuple
- AES-256-CBC, IV = first 16 bytes of the key, padding to 32-byte blocks
- plaintext layout: random(16) | msg_len(4, big endian) | msg | receive_id

receive_id is the CorpID for WeCom and the AppKey/SuiteKey for DingTalk.
"""

import base64
import binascii
import hashlib
import hmac
import os
import secrets
import struct

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from imbridge.errors import (
    DecodeError,
    DecryptError,
    IntegrityError,
    InvalidKeyError,
    SignatureError,
)

BLOCK_SIZE = 32


def compute_signature(token: str, timestamp: str, nonce: str, encrypt: str) -> str:
    """
    Compute the callback signature

    Args:
        token: Verification token
        timestamp: Timestamp from the callback request
        nonce: Nonce from the callback request
        encrypt: Encrypted message (or echostr)

    Returns:
        SHA1 signature (hex string)

    Example:
        sig = compute_signature("token123", "1234567890", "random123", "encrypted_data")
    """
    params = [str(token), str(timestamp), str(nonce), str(encrypt)]
    params.sort()

    sha1 = hashlib.sha1()
    sha1.update(''.join(params).encode('utf-8'))
    return sha1.hexdigest()


def verify_signature(signature: str, token: str, timestamp: str, nonce: str, encrypt: str) -> bool:
    """Recompute the signature and compare in constant time"""
    if not signature:
        return False
    expected = compute_signature(token, timestamp, nonce, encrypt)
    return hmac.compare_digest(expected.encode('utf-8'), signature.encode('utf-8'))


def decode_aes_key(encoding_aes_key: str) -> bytes:
    """
    Decode the 43-char EncodingAESKey into the 32-byte AES key

    Raises:
        InvalidKeyError: key is empty, not base64 or not 32 bytes long
    """
    if not encoding_aes_key:
        raise InvalidKeyError("EncodingAESKey is empty")

    stripped = encoding_aes_key.strip().rstrip('=')
    try:
        aes_key = base64.b64decode(stripped + '=' * (-len(stripped) % 4))
    except (binascii.Error, ValueError) as e:
        raise InvalidKeyError(f"EncodingAESKey is not valid base64: {e}") from e

    if len(aes_key) != 32:
        raise InvalidKeyError(f"AES key must be 32 bytes, got {len(aes_key)}")
    return aes_key


def pkcs7_pad(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    """Pad to a multiple of block_size (always adds 1..block_size bytes)"""
    amount = block_size - (len(data) % block_size)
    return data + bytes([amount]) * amount


def pkcs7_unpad(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    """
    Strip the trailing pad

    A trailing byte outside [1, block_size] means the data is treated as unpadded.
    """
    if not data:
        return data
    pad = data[-1]
    if pad < 1 or pad > block_size:
        return data
    return data[:-pad]


def _cipher(aes_key: bytes) -> Cipher:
    return Cipher(algorithms.AES(aes_key), modes.CBC(aes_key[:16]), backend=default_backend())


def decrypt_message(encrypt_str: str, encoding_aes_key: str, receive_id: str) -> str:
    """
    Decrypt a callback message

    Args:
        encrypt_str: Base64-encoded encrypted message
        encoding_aes_key: AES key (43 chars)
        receive_id: Expected owner id (CorpID / AppKey)

    Returns:
        Decrypted message (UTF-8 string)

    Raises:
        InvalidKeyError: bad EncodingAESKey
        DecodeError: ciphertext is not base64
        DecryptError: ciphertext has an invalid length
        IntegrityError: malformed plaintext or receive_id mismatch

    Example:
        msg = decrypt_message(
            encrypt_str="base64_encrypted_data",
            encoding_aes_key="eF0rmkgB8rtBUGvXVOF5NnV0v5MoVquJQY45wUdXTax",
            receive_id="ww33e8813b380a21b9"
        )
    """
    aes_key = decode_aes_key(encoding_aes_key)

    try:
        encrypted = base64.b64decode(encrypt_str, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecodeError(f"Ciphertext is not valid base64: {e}") from e

    if not encrypted or len(encrypted) % 16:
        raise DecryptError(f"Ciphertext length {len(encrypted)} is not a multiple of 16")

    decryptor = _cipher(aes_key).decryptor()
    plain = pkcs7_unpad(decryptor.update(encrypted) + decryptor.finalize())

    if len(plain) < 20:
        raise IntegrityError("Decrypted payload is too short")

    msg_len = struct.unpack('>I', plain[16:20])[0]
    if 20 + msg_len > len(plain):
        raise IntegrityError("Message length exceeds decrypted payload")

    msg = plain[20:20 + msg_len]
    from_id = plain[20 + msg_len:]
    if not hmac.compare_digest(from_id, (receive_id or '').encode('utf-8')):
        raise IntegrityError(f"Receive id mismatch: expected {receive_id}")

    try:
        return msg.decode('utf-8')
    except UnicodeDecodeError as e:
        raise IntegrityError(f"Decrypted message is not UTF-8: {e}") from e


def encrypt_message(text: str, encoding_aes_key: str, receive_id: str, random_bytes: bytes = None) -> str:
    """
    Encrypt a message (passive reply or test fixture)

    Args:
        text: Plaintext
        encoding_aes_key: AES key (43 chars)
        receive_id: Owner id appended after the message
        random_bytes: 16-byte prefix, random when omitted

    Returns:
        Base64-encoded ciphertext
    """
    aes_key = decode_aes_key(encoding_aes_key)
    if random_bytes is None:
        random_bytes = os.urandom(16)
    if len(random_bytes) != 16:
        raise ValueError("random_bytes must be 16 bytes")

    msg = text.encode('utf-8')
    raw = random_bytes + struct.pack('>I', len(msg)) + msg + receive_id.encode('utf-8')

    encryptor = _cipher(aes_key).encryptor()
    encrypted = encryptor.update(pkcs7_pad(raw)) + encryptor.finalize()
    return base64.b64encode(encrypted).decode('ascii')


def decrypt_signed_message(msg_signature: str, timestamp: str, nonce: str, encrypt_str: str,
                           token: str, encoding_aes_key: str, receive_id: str) -> str:
    """
    Verify msg_signature over the ciphertext, then decrypt

    AES-CBC carries no MAC: a flipped byte inside the message body decrypts to
    altered text that decrypt_message cannot always tell apart. The SHA1 signature
    covers the ciphertext, so callbacks must go through this entry point.

    Raises:
        SignatureError: signature does not match the ciphertext
        CryptoError: see decrypt_message
    """
    if not verify_signature(msg_signature, token, timestamp, nonce, encrypt_str):
        raise SignatureError("msg_signature mismatch")

    return decrypt_message(encrypt_str, encoding_aes_key, receive_id)


def verify_url(msg_signature: str, timestamp: str, nonce: str, echo_str: str,
               token: str, encoding_aes_key: str, receive_id: str) -> str:
    """
    Verify the callback URL during URL validation

    Returns:
        Decrypted echo string to return to the vendor

    Raises:
        SignatureError: If signature verification fails
    """
    return decrypt_signed_message(msg_signature, timestamp, nonce, echo_str,
                                  token, encoding_aes_key, receive_id)


def generate_nonce(length: int = 16) -> str:
    """Random alphanumeric nonce for encrypted replies"""
    alphabet = 'abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
    return ''.join(secrets.choice(alphabet) for _ in range(length))


__all__ = [
    'BLOCK_SIZE',
    'compute_signature',
    'verify_signature',
    'decode_aes_key',
    'pkcs7_pad',
    'pkcs7_unpad',
    'decrypt_message',
    'encrypt_message',
    'decrypt_signed_message',
    'verify_url',
    'generate_nonce',
]
