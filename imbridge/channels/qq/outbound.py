"""
QQ(OneBot)出站发送

目标格式: group:<群号> / private:<QQ号> / user:<QQ号>,无前缀按私聊处理。
媒体以 [CQ:image,file=<url>] 追加在文本之后。
"""

from typing import Union

from imbridge.channels.base import (
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,
    TargetKind,
)
from imbridge.channels.outbound import BaseOutboundAdapter, split_prefix
from imbridge.channels.qq import cqcode


def to_onebot_id(raw: str) -> Union[int, str]:
    return int(raw) if raw.isdigit() else raw


class OneBotOutbound(BaseOutboundAdapter):
    """OneBot出站适配器"""

    def parse_target(self, to: str) -> OutboundTarget:
        prefix, rest = split_prefix(to, ("group", "private", "user"))
        if prefix == "group":
            return OutboundTarget(kind=TargetKind.GROUP, id=rest)
        return OutboundTarget(kind=TargetKind.USER, id=rest)

    def build_message(self, payload: OutboundPayload) -> str:
        message = cqcode.escape_text(payload.text)
        if payload.reply_to_id:
            message = f"[CQ:reply,id={cqcode.escape_param(payload.reply_to_id)}]{message}"
        if payload.media_url:
            image = cqcode.image_code(payload.media_url)
            message = f"{message}\n{image}" if payload.text else f"{message}{image}"
        return message

    def send_payload(self, account: ResolvedAccount, to: str, payload: OutboundPayload) -> SendResult:
        self.ensure_configured(account)
        target = self.parse_target(to)
        if not target.id:
            raise ValueError(f"Empty qq target: {to!r}")

        message = self.build_message(payload)
        if target.kind == TargetKind.GROUP:
            data = self.client.send_group_msg(account, to_onebot_id(target.id), message)
        else:
            data = self.client.send_private_msg(account, to_onebot_id(target.id), message)

        return self.build_result(data.get("message_id"), to, data)
