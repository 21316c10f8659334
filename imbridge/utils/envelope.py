"""
Callback envelope parsing

WeCom callbacks are XML-looking text that is not always well-formed (CDATA mixed
with plain text, no namespace, sometimes nested blocks), so a small regex parser
is used instead of a general-purpose XML library. Nested blocks are flattened:
their child tags become top-level fields.
"""

import json
import re
from typing import Any, Dict, Iterable, Mapping, Union

from imbridge.errors import MessageFormatError

_ROOT_RE = re.compile(r'^\s*(?:<\?xml[^>]*\?>\s*)?<xml>(.*)</xml>\s*$', re.S)
_FIELD_RE = re.compile(r'<(\w+)>(?:<!\[CDATA\[(.*?)\]\]>|([^<]*))</\1>', re.S)


def _to_text(raw: Union[str, bytes]) -> str:
    if isinstance(raw, bytes):
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MessageFormatError(f"Envelope is not UTF-8: {e}") from e
    return raw or ''


def parse_xml_envelope(raw: Union[str, bytes]) -> Dict[str, str]:
    """
    Parse an `<xml>...</xml>` envelope into {tag: text}

    Example:
        parse_xml_envelope("<xml><MsgType><![CDATA[text]]></MsgType><AgentID>1</AgentID></xml>")
        # {'MsgType': 'text', 'AgentID': '1'}
    """
    match = _ROOT_RE.match(_to_text(raw))
    if not match:
        raise MessageFormatError("Missing <xml> root element")

    fields: Dict[str, str] = {}
    for tag, cdata, text in _FIELD_RE.findall(match.group(1)):
        fields.setdefault(tag, cdata if cdata else text.strip())
    return fields


def _cdata(value: str) -> str:
    return '<![CDATA[' + value.replace(']]>', ']]]]><![CDATA[>') + ']]>'


def build_xml_envelope(fields: Mapping[str, Any], plain: Iterable[str] = ()) -> str:
    """
    Build an `<xml>` envelope; values are wrapped in CDATA unless the tag is in `plain`
    """
    plain = set(plain)
    parts = []
    for tag, value in fields.items():
        body = str(value) if tag in plain else _cdata(str(value))
        parts.append(f"<{tag}>{body}</{tag}>")
    return '<xml>' + ''.join(parts) + '</xml>'


def parse_json_envelope(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Parse a JSON callback body, which must be an object"""
    text = _to_text(raw)
    if not text.strip():
        raise MessageFormatError("Empty request body")
    try:
        data = json.loads(text)
    except ValueError as e:
        raise MessageFormatError(f"Invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise MessageFormatError("JSON body must be an object")
    return data


__all__ = [
    'parse_xml_envelope',
    'build_xml_envelope',
    'parse_json_envelope',
]
