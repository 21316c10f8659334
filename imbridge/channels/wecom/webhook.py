"""
企业微信回调处理

- GET: URL验证,校验签名后解密echostr原样返回(text/plain)
- POST: 校验 <Encrypt> 签名 -> 解密 -> 解析消息XML -> 分发,返回 "success"
  on_message 返回字符串时,以加密的被动回复XML应答
"""

import time
from typing import Dict

from imbridge.channels.base import (
    CanonicalMessage,
    ChannelEvent,
    ChatType,
    ResolvedAccount,
)
from imbridge.channels.webhook import BaseWebhookHandler, WebhookRequest, WebhookResponse
from imbridge.errors import MessageFormatError
from imbridge.utils.crypto import (
    compute_signature,
    decrypt_signed_message,
    encrypt_message,
    generate_nonce,
    verify_url,
)
from imbridge.utils.envelope import build_xml_envelope, parse_xml_envelope

CONTENT_PLACEHOLDERS = {
    "image": "[图片]",
    "voice": "[语音]",
    "video": "[视频]",
    "file": "[文件]",
    "location": "[位置]",
    "link": "[链接]",
}


def _to_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def to_canonical_message(fields: Dict[str, str], account_id: str) -> CanonicalMessage:
    """解密后的消息字段 -> CanonicalMessage"""
    msg_type = fields.get("MsgType", "text")
    sender = fields.get("FromUserName", "")
    chat_id = fields.get("ChatId", "")
    create_time = _to_int(fields.get("CreateTime"))

    if msg_type == "text":
        content = fields.get("Content", "")
    elif msg_type == "voice" and fields.get("Recognition"):
        content = fields["Recognition"]
    elif msg_type == "link":
        content = " ".join(filter(None, [fields.get("Title"), fields.get("Url")]))
    elif msg_type == "location":
        content = fields.get("Label") or CONTENT_PLACEHOLDERS["location"]
    else:
        content = CONTENT_PLACEHOLDERS.get(msg_type, f"[{msg_type}]")

    metadata = {
        key: fields[value]
        for key, value in (("agent_id", "AgentID"), ("media_id", "MediaId"), ("pic_url", "PicUrl"))
        if fields.get(value)
    }

    return CanonicalMessage(
        platform="wecom",
        account_id=account_id,
        message_id=fields.get("MsgId") or f"{sender}_{create_time}",
        sender_id=sender,
        chat_id=chat_id or sender,
        chat_type=ChatType.GROUP if chat_id else ChatType.DIRECT,
        content_text=content,
        raw_content_type=msg_type,
        timestamp=create_time * 1000,
        metadata=metadata,
        raw_data=dict(fields),
    )


def build_encrypted_reply(reply_xml: str, token: str, encoding_aes_key: str, corp_id: str,
                          timestamp: str = None, nonce: str = None) -> str:
    """
    加密被动回复

    Returns:
        <xml><Encrypt/><MsgSignature/><TimeStamp/><Nonce/></xml>
    """
    timestamp = timestamp or str(int(time.time()))
    nonce = nonce or generate_nonce()
    encrypted = encrypt_message(reply_xml, encoding_aes_key, corp_id)
    signature = compute_signature(token, timestamp, nonce, encrypted)
    return build_xml_envelope(
        {
            "Encrypt": encrypted,
            "MsgSignature": signature,
            "TimeStamp": timestamp,
            "Nonce": nonce,
        },
        plain=("TimeStamp",),
    )


class WeComWebhookHandler(BaseWebhookHandler):
    """企业微信回调处理器"""

    allowed_methods = ("GET", "POST")

    def handle(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        if request.method == "GET":
            return self._verify_url(request, account)
        return self._receive(request, account)

    def _verify_url(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        """URL验证"""
        config = account.config
        msg_signature = request.query.get("msg_signature", "")
        timestamp = request.query.get("timestamp", "")
        nonce = request.query.get("nonce", "")
        echo_str = request.query.get("echostr", "")

        if not all([msg_signature, timestamp, nonce, echo_str]):
            raise MessageFormatError("Missing parameters")

        decrypted_echo = verify_url(
            msg_signature, timestamp, nonce, echo_str,
            config.token, config.encoding_aes_key, config.corp_id
        )
        self.log.info(f"[wecom] URL validation successful (account={account.account_id})")
        return WebhookResponse.text(decrypted_echo)

    def _receive(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        """消息接收"""
        config = account.config
        envelope = parse_xml_envelope(request.body)
        encrypted = envelope.get("Encrypt")
        if not encrypted:
            raise MessageFormatError("Missing <Encrypt> element in XML")

        plaintext = decrypt_signed_message(
            request.query.get("msg_signature", ""),
            request.query.get("timestamp", ""),
            request.query.get("nonce", ""),
            encrypted,
            config.token, config.encoding_aes_key, config.corp_id,
        )
        fields = parse_xml_envelope(plaintext)

        if fields.get("MsgType") == "event":
            self.dispatch_event(ChannelEvent(
                platform=self.platform,
                account_id=account.account_id,
                event_type=fields.get("Event") or "unknown",
                payload=fields,
            ))
            return WebhookResponse.text("success")

        message = to_canonical_message(fields, account.account_id)
        reply = self.dispatch_message(message)
        if isinstance(reply, str) and reply:
            reply_xml = build_xml_envelope(
                {
                    "ToUserName": message.sender_id,
                    "FromUserName": config.corp_id,
                    "CreateTime": int(time.time()),
                    "MsgType": "text",
                    "Content": reply,
                },
                plain=("CreateTime",),
            )
            return WebhookResponse.xml(
                build_encrypted_reply(reply_xml, config.token, config.encoding_aes_key, config.corp_id)
            )
        return WebhookResponse.text("success")
