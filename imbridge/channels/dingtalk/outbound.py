"""
钉钉出站发送

目标格式:
- webhook:<url> 或 https://oapi.dingtalk.com/robot/... -> 机器人Webhook(按webhookSecret加签)
- session:<url>        -> 回调中的sessionWebhook
- group:/room:<openConversationId> -> 企业内部机器人群消息
- user:<userid>        -> 工作通知(需要agentId)
- 无前缀 -> 配置的webhookUrl;未配置时按工作通知发送

msg_type显式为image/file时,群消息与工作通知发送图片/文件消息;
机器人Webhook只能以markdown嵌入链接。
"""

import os
from typing import Any, Dict

from imbridge.channels.base import (
    MessageType,
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,
    TargetKind,
)
from imbridge.channels.outbound import (
    BaseOutboundAdapter,
    is_image_url,
    markdown_title,
    split_prefix,
    wants_upload,
)
from imbridge.errors import ConfigurationError

ROBOT_URL_PREFIX = "https://oapi.dingtalk.com/robot/"


class DingTalkOutbound(BaseOutboundAdapter):
    """钉钉出站适配器"""

    def parse_target(self, to: str) -> OutboundTarget:
        raw = (to or "").strip()
        if raw.lower().startswith(ROBOT_URL_PREFIX):
            return OutboundTarget(kind=TargetKind.ROOM, id=raw, scope="webhook")

        prefix, rest = split_prefix(raw, ("webhook", "session", "group", "room", "user"))
        if prefix in ("webhook", "session"):
            return OutboundTarget(kind=TargetKind.ROOM, id=rest, scope=prefix)
        if prefix in ("group", "room"):
            return OutboundTarget(kind=TargetKind.GROUP, id=rest, scope="conversation")
        if prefix == "user":
            return OutboundTarget(kind=TargetKind.USER, id=rest, scope="work_notice")
        return OutboundTarget(kind=TargetKind.USER, id=rest, scope=None)

    def _content(self, payload: OutboundPayload) -> str:
        text = payload.text
        if payload.media_url:
            link = f"![图片]({payload.media_url})" if is_image_url(payload.media_url) else f"[文件]({payload.media_url})"
            text = f"{text}\n\n{link}" if text else link
        return text

    def _robot_message(self, text: str, markdown: bool) -> Dict[str, Any]:
        if markdown:
            return {"msgtype": "markdown", "markdown": {"title": markdown_title(text), "text": text}}
        return {"msgtype": "text", "text": {"content": text}}

    def _resolve_scope(self, account: ResolvedAccount, target: OutboundTarget, to: str) -> str:
        """无前缀目标: 优先配置的webhookUrl,其次工作通知"""
        config = account.config
        if target.scope is not None:
            return target.scope
        if config.webhook_url:
            return "default_webhook"
        if config.agent_id:
            return "work_notice"
        raise ConfigurationError(
            f"dingtalk account '{account.account_id}' has no webhookUrl or agentId for target {to!r}"
        )

    def send_payload(self, account: ResolvedAccount, to: str, payload: OutboundPayload) -> SendResult:
        config = account.config
        self.ensure_enabled(account)

        target = self.parse_target(to)
        scope = self._resolve_scope(account, target, to)

        # 机器人Webhook不支持media_id,仍按markdown嵌入链接
        if wants_upload(payload) and scope in ("conversation", "work_notice"):
            return self._send_media(account, to, target, scope, payload)

        text = self._content(payload)
        markdown = self.infer_type(payload) != MessageType.TEXT
        message = self._robot_message(text, markdown)
        message.update(payload.extra)

        if scope == "webhook":
            data = self.client.send_robot_webhook(target.id, message, config.webhook_secret or None)
        elif scope == "session":
            data = self.client.send_robot_webhook(target.id, message)
        elif scope == "default_webhook":
            data = self.client.send_robot_webhook(config.webhook_url, message, config.webhook_secret or None)
        elif scope == "conversation":
            self.ensure_app_credentials(account)
            if markdown:
                data = self.client.send_group_message(
                    account, target.id, "sampleMarkdown", {"title": markdown_title(text), "text": text}
                )
            else:
                data = self.client.send_group_message(account, target.id, "sampleText", {"content": text})
        else:
            self.ensure_work_notice(account, target, to)
            data = self.client.send_work_notice(account, target.id, message)

        message_id = data.get("task_id") or data.get("processQueryKey")
        return self.build_result(message_id, to, data)

    def _send_media(
        self,
        account: ResolvedAccount,
        to: str,
        target: OutboundTarget,
        scope: str,
        payload: OutboundPayload,
    ) -> SendResult:
        """图片/文件消息: 群聊图片直接用photoURL,其余先上传拿media_id"""
        if scope == "work_notice":
            self.ensure_work_notice(account, target, to)
        else:
            self.ensure_app_credentials(account)
        if payload.text:
            self.send_payload(account, to, OutboundPayload(text=payload.text))

        media_type = "image" if payload.msg_type == MessageType.IMAGE else "file"
        if scope == "conversation" and media_type == "image":
            data = self.client.send_group_message(
                account, target.id, "sampleImageMsg", {"photoURL": payload.media_url}
            )
        else:
            media = self.client.download_media(payload.media_url)
            media_id = self.client.upload_media(account, media_type, media)
            if scope == "conversation":
                file_type = os.path.splitext(media.filename)[1].lstrip(".").lower() or "file"
                data = self.client.send_group_message(
                    account,
                    target.id,
                    "sampleFile",
                    {"mediaId": media_id, "fileName": media.filename, "fileType": file_type},
                )
            else:
                data = self.client.send_work_notice(
                    account, target.id, {"msgtype": media_type, media_type: {"media_id": media_id}}
                )

        message_id = data.get("task_id") or data.get("processQueryKey")
        return self.build_result(message_id, to, data)

    def ensure_work_notice(self, account: ResolvedAccount, target: OutboundTarget, to: str) -> None:
        self.ensure_app_credentials(account)
        if not account.config.agent_id:
            raise ConfigurationError(f"dingtalk account '{account.account_id}' missing agentId")
        if not target.id:
            raise ValueError(f"Empty dingtalk target: {to!r}")

    def ensure_app_credentials(self, account: ResolvedAccount) -> None:
        missing = account.config.missing_fields(("app_key", "app_secret"))
        if missing:
            raise ConfigurationError(
                f"dingtalk account '{account.account_id}' missing {', '.join(missing)}"
            )
