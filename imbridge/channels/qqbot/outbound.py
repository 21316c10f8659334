"""
QQ 官方机器人出站发送

目标格式(可带 :msgId 后缀用于被动回复):
- channel:<channel_id>[:msgId]
- dm:<私信guild_id>[:msgId] 频道私信;dm:<user_id>@<源频道guild_id> 先创建私信会话再发送
- group:<group_openid>[:msgId]
- c2c:/user:<user_openid>[:msgId],无前缀按单聊处理
"""

import itertools

from imbridge.channels.base import (
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,
    TargetKind,
)
from imbridge.channels.outbound import BaseOutboundAdapter, split_prefix

MSG_TYPE_TEXT = 0
MSG_TYPE_MEDIA = 7


class QQBotOutbound(BaseOutboundAdapter):
    """QQ 官方机器人出站适配器"""

    def __init__(self, client, descriptor):
        super().__init__(client, descriptor)
        # 同一msg_id多次回复时msg_seq必须不同
        self._msg_seq = itertools.count(1)

    def parse_target(self, to: str) -> OutboundTarget:
        prefix, rest = split_prefix(to, ("channel", "dm", "group", "c2c", "user"))
        target_id, _, reply_to = rest.partition(":")
        if prefix == "dm":
            return OutboundTarget(
                kind=TargetKind.USER, id=target_id, scope="dm", reply_to_message_id=reply_to or None
            )
        if prefix == "channel":
            kind = TargetKind.CHANNEL
        elif prefix == "group":
            kind = TargetKind.GROUP
        else:
            kind = TargetKind.USER
        return OutboundTarget(kind=kind, id=target_id, reply_to_message_id=reply_to or None)

    def send_payload(self, account: ResolvedAccount, to: str, payload: OutboundPayload) -> SendResult:
        self.ensure_configured(account)
        target = self.parse_target(to)
        if not target.id:
            raise ValueError(f"Empty qqbot target: {to!r}")

        msg_id = payload.reply_to_id or target.reply_to_message_id

        if target.kind == TargetKind.CHANNEL:
            data = self.client.send_channel_message(
                account, target.id, payload.text, msg_id=msg_id, image=payload.media_url
            )
            return self.build_result(data.get("id"), to, data)

        if target.scope == "dm":
            guild_id = target.id
            if "@" in guild_id:
                recipient_id, _, source_guild_id = guild_id.partition("@")
                guild_id = self.client.create_direct_session(account, recipient_id, source_guild_id)["guild_id"]
            data = self.client.send_direct_message(
                account, guild_id, payload.text, msg_id=msg_id, image=payload.media_url
            )
            return self.build_result(data.get("id"), to, data)

        scope = "groups" if target.kind == TargetKind.GROUP else "users"
        if payload.media_url:
            file_info = self.client.upload_media(account, scope, target.id, payload.media_url)
            body = {"msg_type": MSG_TYPE_MEDIA, "media": {"file_info": file_info}}
            if payload.text:
                body["content"] = payload.text
        else:
            body = {"msg_type": MSG_TYPE_TEXT, "content": payload.text}
        if msg_id:
            body["msg_id"] = msg_id
            body["msg_seq"] = next(self._msg_seq)
        body.update(payload.extra)

        if target.kind == TargetKind.GROUP:
            data = self.client.send_group_message(account, target.id, body)
        else:
            data = self.client.send_c2c_message(account, target.id, body)
        return self.build_result(data.get("id"), to, data)
