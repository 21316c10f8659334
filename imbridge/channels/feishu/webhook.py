"""
飞书事件回调处理(仅POST)

1. body为 {"encrypt": ...} 时先解密(需要encryptKey)
2. type=url_verification -> 校验token后返回 {"challenge": ...}
3. 配置了encryptKey时校验 x-lark-signature
4. im.message.receive_v1 -> CanonicalMessage, 其他事件 -> ChannelEvent
应答 {"code":0,"msg":"success"},失败时 {"code":<status>,"msg":<原因>}
"""

import json
from typing import Any, Dict

from imbridge.channels.base import (
    CanonicalMessage,
    ChannelEvent,
    ChatType,
    Mention,
    ResolvedAccount,
)
from imbridge.channels.webhook import BaseWebhookHandler, WebhookRequest, WebhookResponse
from imbridge.errors import ConfigurationError, MessageFormatError, SignatureError
from imbridge.utils.envelope import parse_json_envelope
from imbridge.utils.signing import constant_time_equals, feishu_decrypt, feishu_signature

MESSAGE_EVENT = "im.message.receive_v1"


def _content_text(message_type: str, raw_content: str) -> str:
    try:
        content = json.loads(raw_content or "{}")
    except ValueError:
        return raw_content or ""
    if not isinstance(content, dict):
        return str(content)

    if message_type == "text":
        return content.get("text", "")
    if message_type == "post":
        # post: {"title": .., "content": [[{"tag": "text", "text": ..}, ..], ..]}
        body = content.get("zh_cn") or content
        lines = []
        for line in body.get("content") or []:
            lines.append("".join(el.get("text", "") for el in line if isinstance(el, dict)))
        return "\n".join(filter(None, [body.get("title", "")] + lines))
    if message_type == "image":
        return "[图片]"
    return f"[{message_type}]"


def to_canonical_message(event: Dict[str, Any], account_id: str) -> CanonicalMessage:
    """im.message.receive_v1 事件 -> CanonicalMessage"""
    message = event.get("message") or {}
    sender_ids = (event.get("sender") or {}).get("sender_id") or {}
    sender_id = sender_ids.get("open_id") or sender_ids.get("user_id") or sender_ids.get("union_id") or ""

    text = _content_text(message.get("message_type", "text"), message.get("content"))
    mentions = []
    for mention in message.get("mentions") or []:
        mention_ids = mention.get("id") or {}
        mentions.append(Mention(id=mention_ids.get("open_id") or mention_ids.get("user_id") or "",
                                name=mention.get("name")))
        if mention.get("key"):
            text = text.replace(mention["key"], "")

    try:
        created = int(message.get("create_time") or 0)
    except (TypeError, ValueError):
        created = 0

    metadata = {k: message[k] for k in ("root_id", "thread_id") if message.get(k)}

    return CanonicalMessage(
        platform="feishu",
        account_id=account_id,
        message_id=message.get("message_id", ""),
        sender_id=sender_id,
        chat_id=message.get("chat_id") or sender_id,
        chat_type=ChatType.GROUP if message.get("chat_type") == "group" else ChatType.DIRECT,
        content_text=text.strip(),
        raw_content_type=message.get("message_type", "text"),
        timestamp=created,
        mentions=mentions,
        reply_to_id=message.get("parent_id") or None,
        metadata=metadata,
        raw_data=event,
    )


class FeishuWebhookHandler(BaseWebhookHandler):
    """飞书回调处理器"""

    allowed_methods = ("POST",)

    def error_response(self, status: int, message: str) -> WebhookResponse:
        return WebhookResponse.json({"code": status, "msg": message}, status=status)

    def _check_token(self, config, token: str) -> None:
        """配置了verificationToken时,请求必须携带一致的token"""
        if config.verification_token and not constant_time_equals(config.verification_token, token or ""):
            raise SignatureError("Verification token missing or mismatched")

    def handle(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        config = account.config
        body = parse_json_envelope(request.body)

        if "encrypt" in body:
            if not config.encrypt_key:
                raise ConfigurationError(f"feishu account '{account.account_id}' missing encryptKey")
            body = parse_json_envelope(feishu_decrypt(config.encrypt_key, body["encrypt"]))

        if body.get("type") == "url_verification":
            self._check_token(config, body.get("token"))
            self.log.info(f"[feishu] URL verification for account={account.account_id}")
            return WebhookResponse.json({"challenge": body.get("challenge", "")})

        if config.encrypt_key:
            expected = feishu_signature(
                request.header("x-lark-request-timestamp"),
                request.header("x-lark-request-nonce"),
                config.encrypt_key,
                request.body,
            )
            if not constant_time_equals(expected, request.header("x-lark-signature")):
                raise SignatureError("x-lark-signature mismatch")

        header = body.get("header") or {}
        event = body.get("event") or {}
        if not isinstance(header, dict) or not isinstance(event, dict):
            raise MessageFormatError("Event fields 'header' and 'event' must be objects")
        self._check_token(config, header.get("token") or body.get("token", ""))

        event_type = header.get("event_type") or event.get("type") or "unknown"

        if event_type == MESSAGE_EVENT:
            self.dispatch_message(to_canonical_message(event, account.account_id))
        else:
            self.dispatch_event(ChannelEvent(
                platform=self.platform,
                account_id=account.account_id,
                event_type=event_type,
                payload=body,
            ))
        return WebhookResponse.json({"code": 0, "msg": "success"})
