"""
QQ 官方机器人 HTTP 回调处理(仅POST)

- op=13: 回调地址验证,返回 {plain_token, signature}
- 其他: 校验 X-Signature-Ed25519(公钥由机器人secret派生)后处理
  op=0 且 t 为消息事件 -> CanonicalMessage,其余 -> ChannelEvent
应答 {"op": 12}
"""

import re
from datetime import datetime
from typing import Any, Dict

from imbridge.channels.base import (
    CanonicalMessage,
    ChannelEvent,
    ChatType,
    Mention,
    ResolvedAccount,
)
from imbridge.channels.webhook import BaseWebhookHandler, WebhookRequest, WebhookResponse
from imbridge.errors import MessageFormatError, SignatureError
from imbridge.utils.envelope import parse_json_envelope
from imbridge.utils.signing import qqbot_validation_signature, qqbot_verify_ed25519

OP_DISPATCH = 0
OP_HTTP_CALLBACK_ACK = 12
OP_CALLBACK_VALIDATION = 13

MESSAGE_EVENTS = {
    "MESSAGE_CREATE",
    "AT_MESSAGE_CREATE",
    "DIRECT_MESSAGE_CREATE",
    "GROUP_AT_MESSAGE_CREATE",
    "C2C_MESSAGE_CREATE",
}

MENTION_PATTERN = re.compile(r"<@!?\w+>")


def _timestamp_ms(value: Any) -> int:
    if not value:
        return 0
    try:
        return int(datetime.fromisoformat(str(value)).timestamp() * 1000)
    except ValueError:
        return 0


def to_canonical_message(event_type: str, data: Dict[str, Any], account_id: str) -> CanonicalMessage:
    """消息事件 -> CanonicalMessage"""
    author = data.get("author") if isinstance(data.get("author"), dict) else {}
    message_id = data.get("id", "")
    metadata: Dict[str, Any] = {"event_type": event_type}

    if event_type == "GROUP_AT_MESSAGE_CREATE":
        sender_id = author.get("member_openid") or author.get("id", "")
        chat_id = data.get("group_openid", "")
        chat_type = ChatType.GROUP
        metadata["reply_target"] = f"group:{chat_id}:{message_id}"
    elif event_type == "C2C_MESSAGE_CREATE":
        sender_id = author.get("user_openid") or author.get("id", "")
        chat_id = sender_id
        chat_type = ChatType.DIRECT
        metadata["reply_target"] = f"c2c:{chat_id}:{message_id}"
    elif event_type == "DIRECT_MESSAGE_CREATE":
        sender_id = author.get("id", "")
        chat_id = data.get("guild_id", "")
        chat_type = ChatType.DIRECT
        metadata["guild_id"] = chat_id
        metadata["reply_target"] = f"dm:{chat_id}:{message_id}"
    else:
        sender_id = author.get("id", "")
        chat_id = data.get("channel_id", "")
        chat_type = ChatType.GROUP
        metadata["guild_id"] = data.get("guild_id")
        metadata["reply_target"] = f"channel:{chat_id}:{message_id}"

    mentions = [
        Mention(id=str(m.get("id", "")), name=m.get("username"))
        for m in data.get("mentions") or []
        if isinstance(m, dict)
    ]

    return CanonicalMessage(
        platform="qqbot",
        account_id=account_id,
        message_id=message_id,
        sender_id=sender_id,
        sender_name=author.get("username"),
        chat_id=chat_id,
        chat_type=chat_type,
        content_text=MENTION_PATTERN.sub("", data.get("content") or "").strip(),
        raw_content_type="text",
        timestamp=_timestamp_ms(data.get("timestamp")),
        mentions=mentions,
        reply_to_id=(data.get("message_reference") or {}).get("message_id"),
        metadata=metadata,
        raw_data=data,
    )


class QQBotWebhookHandler(BaseWebhookHandler):
    """QQ 官方机器人回调处理器"""

    allowed_methods = ("POST",)

    def handle(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        config = account.config
        body = parse_json_envelope(request.body)
        op = body.get("op")
        data = body.get("d") or {}
        if not isinstance(data, dict):
            raise MessageFormatError("Payload field 'd' must be an object")

        if op == OP_CALLBACK_VALIDATION:
            plain_token = data.get("plain_token")
            event_ts = data.get("event_ts")
            if not plain_token or not event_ts:
                raise MessageFormatError("Validation payload missing plain_token/event_ts")
            self.log.info(f"[qqbot] callback validation for account={account.account_id}")
            return WebhookResponse.json({
                "plain_token": plain_token,
                "signature": qqbot_validation_signature(config.client_secret, str(event_ts), plain_token),
            })

        if not qqbot_verify_ed25519(
            config.client_secret,
            request.header("x-signature-timestamp"),
            request.body,
            request.header("x-signature-ed25519"),
        ):
            raise SignatureError("X-Signature-Ed25519 verification failed")

        if op != OP_DISPATCH:
            self.log.debug(f"[qqbot] ignoring op={op}")
            return WebhookResponse.json({"op": OP_HTTP_CALLBACK_ACK})

        event_type = body.get("t") or "unknown"
        if event_type in MESSAGE_EVENTS:
            self.dispatch_message(to_canonical_message(event_type, data, account.account_id))
        else:
            self.dispatch_event(ChannelEvent(
                platform=self.platform,
                account_id=account.account_id,
                event_type=event_type,
                payload=data,
            ))
        return WebhookResponse.json({"op": OP_HTTP_CALLBACK_ACK})
