"""Utility functions and helpers."""

from .crypto import (
    compute_signature,
    verify_signature,
    decrypt_message,
    encrypt_message,
    decrypt_signed_message,
    verify_url,
)
from .envelope import (
    parse_xml_envelope,
    build_xml_envelope,
    parse_json_envelope,
)

__all__ = [
    'compute_signature',
    'verify_signature',
    'decrypt_message',
    'encrypt_message',
    'decrypt_signed_message',
    'verify_url',
    'parse_xml_envelope',
    'build_xml_envelope',
    'parse_json_envelope',
]
