"""
钉钉回调处理(仅POST)

两种回调按报文区分:
1. 机器人消息回调: body含 conversationId + msgId
   headers timestamp/sign = base64(HMAC-SHA256(secret, "timestamp\\nsecret"))
   应答 {"msgtype":"empty","empty":{}}
2. 事件订阅回调: body {"encrypt": ...}, query signature/timestamp/nonce
   与企业微信相同的SHA1签名 + AES加密,owner为appKey
   应答加密的 "success"
"""

import json
import time
from typing import Any, Dict, List

from imbridge.channels.base import (
    CanonicalMessage,
    ChannelEvent,
    ChatType,
    Mention,
    ResolvedAccount,
)
from imbridge.channels.webhook import BaseWebhookHandler, WebhookRequest, WebhookResponse
from imbridge.errors import ConfigurationError, MessageFormatError, SignatureError
from imbridge.utils.crypto import (
    compute_signature,
    decrypt_signed_message,
    encrypt_message,
    generate_nonce,
)
from imbridge.utils.envelope import parse_json_envelope
from imbridge.utils.signing import constant_time_equals, dingtalk_robot_sign

ROBOT_ACK = {"msgtype": "empty", "empty": {}}
SIGN_TOLERANCE_MS = 3600 * 1000


def _message_text(body: Dict[str, Any]) -> str:
    msg_type = body.get("msgtype", "text")
    if msg_type == "text":
        text = body.get("text") or {}
        if not isinstance(text, dict):
            raise MessageFormatError("Robot message field 'text' must be an object")
        return str(text.get("content") or "").strip()
    if msg_type == "richText":
        content = body.get("content") or {}
        if not isinstance(content, dict):
            raise MessageFormatError("Robot message field 'content' must be an object")
        parts = content.get("richText") or []
        if not isinstance(parts, list):
            raise MessageFormatError("Robot message field 'richText' must be a list")
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
    if msg_type == "picture":
        return "[图片]"
    return f"[{msg_type}]"


def _mentions(body: Dict[str, Any]) -> List[Mention]:
    result = []
    for user in body.get("atUsers") or []:
        if not isinstance(user, dict):
            continue
        user_id = user.get("staffId") or user.get("dingtalkId")
        if user_id:
            result.append(Mention(id=user_id))
    return result


def to_canonical_message(body: Dict[str, Any], account_id: str) -> CanonicalMessage:
    """机器人回调 -> CanonicalMessage"""
    is_group = str(body.get("conversationType", "1")) == "2"
    sender_id = body.get("senderStaffId") or body.get("senderId") or ""

    metadata = {
        key: body[value]
        for key, value in (
            ("session_webhook", "sessionWebhook"),
            ("session_webhook_expired_time", "sessionWebhookExpiredTime"),
            ("robot_code", "robotCode"),
            ("conversation_title", "conversationTitle"),
            ("is_in_at_list", "isInAtList"),
        )
        if value in body
    }

    try:
        created = int(body.get("createAt") or 0)
    except (TypeError, ValueError):
        created = 0

    return CanonicalMessage(
        platform="dingtalk",
        account_id=account_id,
        message_id=str(body.get("msgId")),
        sender_id=sender_id,
        sender_name=body.get("senderNick"),
        chat_id=body.get("conversationId") or sender_id,
        chat_type=ChatType.GROUP if is_group else ChatType.DIRECT,
        content_text=_message_text(body),
        raw_content_type=body.get("msgtype", "text"),
        timestamp=created,
        mentions=_mentions(body),
        metadata=metadata,
        raw_data=body,
    )


class DingTalkWebhookHandler(BaseWebhookHandler):
    """钉钉回调处理器"""

    allowed_methods = ("POST",)

    def handle(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        body = parse_json_envelope(request.body)
        if "encrypt" in body:
            return self._handle_event(request, account, body)
        if body.get("conversationId") and body.get("msgId"):
            return self._handle_robot(request, account, body)
        raise MessageFormatError("Unrecognized DingTalk callback body")

    def _verify_robot_sign(self, request: WebhookRequest, secret: str) -> None:
        timestamp = request.header("timestamp") or request.header("x-dingtalk-timestamp")
        sign = request.header("sign") or request.header("x-dingtalk-sign")
        if not timestamp or not sign:
            raise SignatureError("Missing timestamp/sign headers")

        try:
            sent_at = int(timestamp)
        except ValueError:
            raise SignatureError("Invalid timestamp header")
        if abs(time.time() * 1000 - sent_at) > SIGN_TOLERANCE_MS:
            raise SignatureError("Timestamp outside the allowed window")

        if not constant_time_equals(dingtalk_robot_sign(timestamp, secret), sign):
            raise SignatureError("Robot sign mismatch")

    def _handle_robot(self, request: WebhookRequest, account: ResolvedAccount, body: Dict[str, Any]) -> WebhookResponse:
        config = account.config
        self._verify_robot_sign(request, config.sign_secret or config.app_secret)

        self.dispatch_message(to_canonical_message(body, account.account_id))
        return WebhookResponse.json(ROBOT_ACK)

    def _handle_event(self, request: WebhookRequest, account: ResolvedAccount, body: Dict[str, Any]) -> WebhookResponse:
        config = account.config
        missing = config.missing_fields(("token", "aes_key", "app_key"))
        if missing:
            raise ConfigurationError(f"dingtalk account '{account.account_id}' missing {', '.join(missing)}")

        encrypted = body.get("encrypt") or ""
        signature = request.query.get("msg_signature") or request.query.get("signature", "")
        timestamp = request.query.get("timestamp", "")
        nonce = request.query.get("nonce", "")
        plaintext = decrypt_signed_message(
            signature, timestamp, nonce, encrypted, config.token, config.aes_key, config.app_key
        )
        try:
            event = json.loads(plaintext)
        except ValueError as e:
            raise MessageFormatError(f"Decrypted event is not JSON: {e}") from e
        if not isinstance(event, dict):
            raise MessageFormatError("Decrypted event must be an object")

        event_type = event.get("EventType") or "unknown"
        if event_type == "check_url":
            self.log.info(f"[dingtalk] URL validation successful (account={account.account_id})")
        else:
            self.dispatch_event(ChannelEvent(
                platform=self.platform,
                account_id=account.account_id,
                event_type=event_type,
                payload=event,
            ))
        return WebhookResponse.json(self.encrypted_success(account))

    def encrypted_success(self, account: ResolvedAccount) -> Dict[str, str]:
        config = account.config
        timestamp = str(int(time.time() * 1000))
        nonce = generate_nonce()
        encrypted = encrypt_message("success", config.aes_key, config.app_key)
        return {
            "msg_signature": compute_signature(config.token, timestamp, nonce, encrypted),
            "timeStamp": timestamp,
            "nonce": nonce,
            "encrypt": encrypted,
        }
