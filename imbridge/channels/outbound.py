"""
出站发送适配器基类

每个平台实现:
- parse_target: 把 "group:123" 这类目标字符串解析为 OutboundTarget(全函数,不抛异常)
- send_payload: 组装请求体并调用平台发送接口

本层不做分片: chunker 为 None,调用方按 text_chunk_limit 自行切分。
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Tuple

from imbridge.channels.base import (
    ChannelDescriptor,
    MessageType,
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,
)
from imbridge.errors import ConfigurationError

logger = logging.getLogger(__name__)

MARKDOWN_PATTERN = re.compile(r"[*_`#\[\]()]")
IMAGE_URL_PATTERN = re.compile(r"\.(jpe?g|png|gif|webp)(\?.*)?$", re.IGNORECASE)


def looks_like_markdown(text: str) -> bool:
    return bool(text) and bool(MARKDOWN_PATTERN.search(text))


def is_image_url(url: str) -> bool:
    return bool(url) and bool(IMAGE_URL_PATTERN.search(url))


def split_prefix(to: str, prefixes: Iterable[str]) -> Tuple[Optional[str], str]:
    """
    拆分目标前缀(大小写不敏感)

    Returns:
        (命中的前缀(小写,不含冒号) 或 None, 剩余部分)
    """
    raw = (to or "").strip()
    lowered = raw.lower()
    for prefix in prefixes:
        marker = f"{prefix}:"
        if lowered.startswith(marker):
            return prefix, raw[len(marker):]
    return None, raw


def markdown_title(text: str, default: str = "消息") -> str:
    """取首行前20个字符作为标题"""
    first_line = (text or "").strip().split("\n", 1)[0].lstrip("# ").strip()
    return first_line[:20] or default


def wants_upload(payload: OutboundPayload) -> bool:
    """显式指定image/file且带媒体链接时,走"下载-上传素材-发送"流程"""
    return bool(payload.media_url) and payload.msg_type in (MessageType.IMAGE, MessageType.FILE)


class BaseOutboundAdapter(ABC):
    """出站发送适配器基类"""

    chunker = None

    def __init__(self, client: Any, descriptor: ChannelDescriptor):
        self.client = client
        self.descriptor = descriptor

    @property
    def channel(self) -> str:
        return self.descriptor.id

    @property
    def text_chunk_limit(self) -> int:
        return self.descriptor.text_chunk_limit

    @abstractmethod
    def parse_target(self, to: str) -> OutboundTarget:
        """解析目标字符串,任意输入都返回合法的OutboundTarget"""
        pass

    @abstractmethod
    def send_payload(self, account: ResolvedAccount, to: str, payload: OutboundPayload) -> SendResult:
        """发送载荷"""
        pass

    def send_text(
        self,
        account: ResolvedAccount,
        to: str,
        text: str,
        reply_to_id: Optional[str] = None,
    ) -> SendResult:
        return self.send_payload(account, to, OutboundPayload(text=text, reply_to_id=reply_to_id))

    def send_media(
        self,
        account: ResolvedAccount,
        to: str,
        text: str,
        media_url: str,
        reply_to_id: Optional[str] = None,
    ) -> SendResult:
        return self.send_payload(
            account, to, OutboundPayload(text=text or "", media_url=media_url, reply_to_id=reply_to_id)
        )

    def infer_type(self, payload: OutboundPayload) -> MessageType:
        """未显式指定类型时: 有媒体或含markdown字符 -> markdown"""
        if payload.msg_type is not None:
            return MessageType(payload.msg_type)
        if payload.media_url or looks_like_markdown(payload.text):
            return MessageType.MARKDOWN
        return MessageType.TEXT

    def ensure_enabled(self, account: ResolvedAccount) -> None:
        if not account.config.enabled:
            raise ConfigurationError(f"{self.channel} account '{account.account_id}' is disabled")

    def ensure_configured(self, account: ResolvedAccount) -> None:
        self.ensure_enabled(account)
        missing = account.config.missing_required()
        if missing:
            raise ConfigurationError(
                f"{self.channel} account '{account.account_id}' missing {', '.join(missing)}"
            )

    def build_result(self, message_id: Any, to: str, raw: Optional[Dict[str, Any]] = None) -> SendResult:
        if message_id in (None, ""):
            message_id = int(time.time() * 1000)
        result = SendResult(
            channel=self.channel,
            message_id=f"{self.channel}_{message_id}",
            chat_id=to,
            raw_data=raw or {},
        )
        logger.info(f"[{self.channel}] sent {result.message_id} to {to}")
        return result
