"""
CQ码工具

文本中的 & [ ] 需要转义,CQ码参数还需要转义逗号。
"""

import re
from typing import List, Optional, Tuple

CQ_PATTERN = re.compile(r"\[CQ:(\w+)((?:,[^\]]*)?)\]")


def escape_text(text: str) -> str:
    return (text or "").replace("&", "&amp;").replace("[", "&#91;").replace("]", "&#93;")


def escape_param(value: str) -> str:
    return escape_text(value).replace(",", "&#44;")


def unescape(text: str) -> str:
    return (
        (text or "")
        .replace("&#44;", ",")
        .replace("&#91;", "[")
        .replace("&#93;", "]")
        .replace("&amp;", "&")
    )


def image_code(url: str) -> str:
    return f"[CQ:image,file={escape_param(url)}]"


def _params(raw: str) -> dict:
    result = {}
    for part in raw.lstrip(",").split(","):
        if "=" in part:
            key, _, value = part.partition("=")
            result[key] = unescape(value)
    return result


def parse_message(raw: str) -> Tuple[str, List[str], Optional[str]]:
    """
    解析CQ码消息

    Returns:
        (纯文本, 被@的QQ号列表, 被回复的消息ID)
    """
    mentions = []
    reply_to = None
    parts = []
    position = 0
    for match in CQ_PATTERN.finditer(raw or ""):
        parts.append(unescape(raw[position:match.start()]))
        code, params = match.group(1), _params(match.group(2))
        if code == "at" and params.get("qq"):
            mentions.append(params["qq"])
        elif code == "reply" and params.get("id"):
            reply_to = params["id"]
        elif code == "image":
            parts.append("[图片]")
        elif code == "face":
            parts.append("[表情]")
        position = match.end()
    parts.append(unescape((raw or "")[position:]))
    return "".join(parts).strip(), mentions, reply_to
