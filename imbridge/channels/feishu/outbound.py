"""
飞书出站发送

目标格式:
- ou_xxx -> open_id, oc_xxx -> chat_id, on_xxx -> union_id, 含@ -> email
- chat:/group: -> chat_id, user: -> user_id, open: -> open_id, union: -> union_id, email: -> email
- 其他 -> chat_id
- 末尾 :om_xxx 表示回复该消息

markdown文本转换为富文本(post),链接拆成a标签;媒体URL作为链接附在末尾。
msg_type显式为image/file时先上传拿image_key/file_key;带card或msg_type为card时发送interactive卡片。
"""

import json
import logging
import re
from typing import Any, Dict, List, Tuple

from imbridge.channels.base import (
    MessageType,
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,
    TargetKind,
)
from imbridge.channels.outbound import BaseOutboundAdapter, is_image_url, split_prefix, wants_upload

logger = logging.getLogger(__name__)

LINK_PATTERN = re.compile(r"!?\[([^\]]*)\]\(([^)\s]+)\)")

PREFIX_TYPES = {
    "chat": (TargetKind.GROUP, "chat_id"),
    "group": (TargetKind.GROUP, "chat_id"),
    "user": (TargetKind.USER, "user_id"),
    "open": (TargetKind.USER, "open_id"),
    "union": (TargetKind.USER, "union_id"),
    "email": (TargetKind.USER, "email"),
}


def _infer_id_type(receive_id: str) -> Tuple[TargetKind, str]:
    if receive_id.startswith("ou_"):
        return TargetKind.USER, "open_id"
    if receive_id.startswith("oc_"):
        return TargetKind.GROUP, "chat_id"
    if receive_id.startswith("on_"):
        return TargetKind.USER, "union_id"
    if "@" in receive_id:
        return TargetKind.USER, "email"
    return TargetKind.GROUP, "chat_id"


def _line_elements(line: str) -> List[Dict[str, str]]:
    elements = []
    position = 0
    for match in LINK_PATTERN.finditer(line):
        if match.start() > position:
            elements.append({"tag": "text", "text": line[position:match.start()]})
        elements.append({"tag": "a", "text": match.group(1) or match.group(2), "href": match.group(2)})
        position = match.end()
    if position < len(line) or not elements:
        elements.append({"tag": "text", "text": line[position:]})
    return elements


def build_post_content(text: str, media_url: str = None) -> Dict[str, Any]:
    """markdown文本 -> post(zh_cn)"""
    lines = [_line_elements(line) for line in (text or "").split("\n")] if text else []
    if media_url:
        label = "图片" if is_image_url(media_url) else "文件"
        lines.append([{"tag": "a", "text": label, "href": media_url}])
    return {"zh_cn": {"title": "", "content": lines}}


def build_card_content(text: str, media_url: str = None) -> Dict[str, Any]:
    """没有显式卡片时,用一个markdown元素承载文本"""
    content = text or ""
    if media_url:
        label = "图片" if is_image_url(media_url) else "文件"
        link = f"[{label}]({media_url})"
        content = f"{content}\n\n{link}" if content else link
    return {"config": {"wide_screen_mode": True}, "elements": [{"tag": "markdown", "content": content}]}


class FeishuOutbound(BaseOutboundAdapter):
    """飞书出站适配器"""

    def parse_target(self, to: str) -> OutboundTarget:
        prefix, rest = split_prefix(to, tuple(PREFIX_TYPES))

        reply_to = None
        head, separator, tail = rest.rpartition(":")
        if separator and tail.startswith("om_"):
            rest, reply_to = head, tail

        if prefix is not None:
            kind, id_type = PREFIX_TYPES[prefix]
        else:
            kind, id_type = _infer_id_type(rest)
        return OutboundTarget(kind=kind, id=rest, scope=id_type, reply_to_message_id=reply_to)

    def shape(self, payload: OutboundPayload) -> Tuple[str, str]:
        """返回 (msg_type, content JSON字符串)"""
        msg_type = self.infer_type(payload)
        if payload.card is not None or msg_type == MessageType.CARD:
            card = payload.card or build_card_content(payload.text, payload.media_url)
            return "interactive", json.dumps(card, ensure_ascii=False)
        if msg_type == MessageType.TEXT:
            return "text", json.dumps({"text": payload.text}, ensure_ascii=False)
        return "post", json.dumps(build_post_content(payload.text, payload.media_url), ensure_ascii=False)

    def upload(self, account: ResolvedAccount, payload: OutboundPayload) -> Tuple[str, str]:
        """下载媒体并上传,返回 (msg_type, content JSON字符串)"""
        media = self.client.download_media(payload.media_url)
        if payload.msg_type == MessageType.IMAGE:
            image_key = self.client.upload_image(account, media)
            return "image", json.dumps({"image_key": image_key})
        file_key = self.client.upload_file(account, media)
        return "file", json.dumps({"file_key": file_key})

    def send_payload(self, account: ResolvedAccount, to: str, payload: OutboundPayload) -> SendResult:
        self.ensure_configured(account)
        target = self.parse_target(to)
        reply_to = payload.reply_to_id or target.reply_to_message_id
        if not reply_to and not target.id:
            raise ValueError(f"Empty feishu target: {to!r}")

        if wants_upload(payload):
            # 图片/文件消息不带文字,说明文字先单独发一条
            if payload.text:
                self.send_payload(account, to, OutboundPayload(text=payload.text, reply_to_id=payload.reply_to_id))
            msg_type, content = self.upload(account, payload)
        else:
            msg_type, content = self.shape(payload)

        logger.info(f"Sending feishu {msg_type} message to {target.scope}")
        if reply_to:
            data = self.client.reply_message(account, reply_to, msg_type, content)
        else:
            data = self.client.send_message(account, target.scope, target.id, msg_type, content)

        return self.build_result(data.get("message_id"), to, data)
