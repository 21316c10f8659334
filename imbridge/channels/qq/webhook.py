"""
OneBot v11 HTTP上报处理(仅POST)

配置了secret时校验 X-Signature: sha1=<HMAC-SHA1(secret, body)>。
post_type=message -> CanonicalMessage,其余(notice/request/meta_event) -> ChannelEvent。
应答 204(不使用快速操作)。
"""

from typing import Any, Dict, List

from imbridge.channels.base import (
    CanonicalMessage,
    ChannelEvent,
    ChatType,
    Mention,
    ResolvedAccount,
)
from imbridge.channels.qq import cqcode
from imbridge.channels.webhook import BaseWebhookHandler, WebhookRequest, WebhookResponse
from imbridge.errors import SignatureError
from imbridge.utils.envelope import parse_json_envelope
from imbridge.utils.signing import constant_time_equals, onebot_signature


def _parse_segments(segments: List[Dict[str, Any]]):
    """数组格式消息 -> (文本, @列表, 回复ID)"""
    parts, mentions, reply_to = [], [], None
    for segment in segments:
        if not isinstance(segment, dict):
            continue
        seg_type = segment.get("type")
        data = segment.get("data") or {}
        if seg_type == "text":
            parts.append(data.get("text", ""))
        elif seg_type == "at" and data.get("qq") is not None:
            mentions.append(str(data["qq"]))
        elif seg_type == "reply" and data.get("id") is not None:
            reply_to = str(data["id"])
        elif seg_type == "image":
            parts.append("[图片]")
        elif seg_type == "face":
            parts.append("[表情]")
    return "".join(parts).strip(), mentions, reply_to


def to_canonical_message(body: Dict[str, Any], account_id: str) -> CanonicalMessage:
    """message上报 -> CanonicalMessage"""
    message = body.get("message")
    if isinstance(message, list):
        text, mentions, reply_to = _parse_segments(message)
    else:
        text, mentions, reply_to = cqcode.parse_message(body.get("raw_message") or message or "")

    sender = body.get("sender") or {}
    sender_id = str(body.get("user_id", ""))
    is_group = body.get("message_type") == "group"
    chat_id = str(body.get("group_id")) if is_group else sender_id

    try:
        timestamp = int(body.get("time") or 0) * 1000
    except (TypeError, ValueError):
        timestamp = 0

    return CanonicalMessage(
        platform="qq",
        account_id=account_id,
        message_id=str(body.get("message_id", "")),
        sender_id=sender_id,
        sender_name=sender.get("card") or sender.get("nickname"),
        chat_id=chat_id,
        chat_type=ChatType.GROUP if is_group else ChatType.DIRECT,
        content_text=text,
        raw_content_type=body.get("message_type", "private"),
        timestamp=timestamp,
        mentions=[Mention(id=qq) for qq in mentions],
        reply_to_id=reply_to,
        metadata={
            "self_id": body.get("self_id"),
            "reply_target": f"group:{chat_id}" if is_group else f"private:{chat_id}",
        },
        raw_data=body,
    )


class OneBotWebhookHandler(BaseWebhookHandler):
    """OneBot HTTP上报处理器"""

    allowed_methods = ("POST",)

    def handle(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        config = account.config
        if config.secret:
            expected = onebot_signature(config.secret, request.body)
            if not constant_time_equals(expected, request.header("x-signature")):
                raise SignatureError("X-Signature mismatch")

        body = parse_json_envelope(request.body)
        post_type = body.get("post_type") or "unknown"

        if post_type == "message":
            self.dispatch_message(to_canonical_message(body, account.account_id))
        else:
            detail = body.get("notice_type") or body.get("request_type") or body.get("meta_event_type")
            self.dispatch_event(ChannelEvent(
                platform=self.platform,
                account_id=account.account_id,
                event_type=f"{post_type}.{detail}" if detail else post_type,
                payload=body,
            ))
        return WebhookResponse(status=204, body="")
