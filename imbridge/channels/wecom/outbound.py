"""
企业微信出站发送

目标格式:
- party:<部门ID>   -> toparty
- tag:<标签ID>     -> totag
- group:/room:/chat:<chatid> -> 群聊(appchat)
- webhook:<url> 或群机器人地址 -> 群机器人Webhook(不需要corpId/secret)
- user:<userid> 或无前缀 -> touser

企微应用消息没有URL形式的图片消息,默认把媒体链接以markdown图片/文件链接嵌入;
msg_type显式为image/file时先下载再上传临时素材,按media_id发送。
"""

import base64
import hashlib
import logging
from typing import Any, Dict

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

RECEIVER_FIELDS = {"user": "touser", "party": "toparty", "tag": "totag"}
WEBHOOK_URL_PATTERN = "/cgi-bin/webhook/send"


def embed_media(text: str, media_url: str) -> str:
    link = f"![图片]({media_url})" if is_image_url(media_url) else f"[文件]({media_url})"
    return f"{text}\n\n{link}" if text else link


class WeComOutbound(BaseOutboundAdapter):
    """企业微信出站适配器"""

    def parse_target(self, to: str) -> OutboundTarget:
        prefix, rest = split_prefix(to, ("webhook", "party", "tag", "group", "room", "chat", "user"))
        if prefix == "webhook" or (prefix is None and WEBHOOK_URL_PATTERN in rest):
            return OutboundTarget(kind=TargetKind.ROOM, id=rest, scope="webhook")
        if prefix in ("party", "tag"):
            return OutboundTarget(kind=TargetKind.GROUP, id=rest, scope=prefix)
        if prefix in ("group", "room", "chat"):
            return OutboundTarget(kind=TargetKind.ROOM, id=rest, scope="appchat")
        return OutboundTarget(kind=TargetKind.USER, id=rest, scope="user")

    def send_payload(self, account: ResolvedAccount, to: str, payload: OutboundPayload) -> SendResult:
        target = self.parse_target(to)
        if target.scope == "webhook":
            self.ensure_enabled(account)
        else:
            self.ensure_configured(account)
        if not target.id:
            raise ValueError(f"Empty wecom target: {to!r}")

        if wants_upload(payload):
            # 媒体消息不带文字,说明文字先单独发一条
            if payload.text:
                self.send_payload(account, to, OutboundPayload(text=payload.text))
            message = self._media_message(account, target, payload)
        else:
            content = payload.text
            if payload.media_url:
                content = embed_media(content, payload.media_url)
            if self.infer_type(payload) == MessageType.TEXT:
                message = {"msgtype": "text", "text": {"content": content}}
            else:
                message = {"msgtype": "markdown", "markdown": {"content": content}}
        message.update(payload.extra)

        if target.scope == "webhook":
            data = self.client.send_webhook(target.id, message)
        elif target.kind == TargetKind.ROOM:
            message["chatid"] = target.id
            data = self.client.send_appchat(account, message)
        else:
            message[RECEIVER_FIELDS[target.scope]] = target.id
            data = self.client.send_message(account, message)

        return self.build_result(data.get("msgid"), to, data)

    def _media_message(
        self, account: ResolvedAccount, target: OutboundTarget, payload: OutboundPayload
    ) -> Dict[str, Any]:
        """下载媒体并组装image/file消息"""
        media_type = "image" if payload.msg_type == MessageType.IMAGE else "file"
        media = self.client.download_media(payload.media_url)

        if target.scope == "webhook":
            if media_type == "image":
                # 群机器人图片直接传base64+md5
                return {
                    "msgtype": "image",
                    "image": {
                        "base64": base64.b64encode(media.content).decode("ascii"),
                        "md5": hashlib.md5(media.content).hexdigest(),
                    },
                }
            media_id = self.client.upload_webhook_media(target.id, media)
        else:
            media_id = self.client.upload_media(account, media_type, media)

        logger.info(f"Sending wecom {media_type} message to {target.scope}")
        return {"msgtype": media_type, media_type: {"media_id": media_id}}
