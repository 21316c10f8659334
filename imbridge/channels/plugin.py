"""
渠道插件基类

每个平台一个插件,对外提供四类能力:
1. 配置解析: list_account_ids / resolve_account / is_configured
2. 回调处理: create_webhook_handler
3. 出站发送: send_text / send_media / send_payload / parse_target
4. 描述信息: descriptor / describe_account

插件由注册表创建一次,之后只读;access_token缓存由注册表统一注入。
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

from imbridge.channels import accounts
from imbridge.channels.base import (
    BaseAccountConfig,
    ChannelDescriptor,
    OutboundPayload,
    OutboundTarget,
    ResolvedAccount,
    SendResult,
)
from imbridge.channels.outbound import BaseOutboundAdapter
from imbridge.channels.token_cache import TokenCacheService
from imbridge.channels.webhook import BaseWebhookHandler, EventCallback, MessageCallback
from imbridge.config.channels import ConfigSource, channel_section, load_config
from imbridge.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class ChannelPlugin(ABC):
    """渠道插件抽象基类"""

    descriptor: ChannelDescriptor
    account_config_cls: Type[BaseAccountConfig]
    webhook_handler_cls: Type[BaseWebhookHandler]

    def __init__(
        self,
        token_cache: Optional[TokenCacheService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.token_cache = token_cache or TokenCacheService(refresh_margin=self.settings.TOKEN_REFRESH_MARGIN)
        self.outbound = self.create_outbound()

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def text_chunk_limit(self) -> int:
        return self.descriptor.text_chunk_limit

    @abstractmethod
    def create_outbound(self) -> BaseOutboundAdapter:
        """创建出站适配器(使用self.token_cache)"""
        pass

    # ---------- 配置解析 ----------

    def section(self, config: ConfigSource) -> Dict[str, Any]:
        return dict(channel_section(load_config(config), self.id))

    def list_account_ids(self, config: ConfigSource) -> List[str]:
        return accounts.list_account_ids(self.section(config))

    def resolve_account(self, config: ConfigSource, account_id: Optional[str] = None) -> ResolvedAccount:
        return accounts.resolve_account(self.section(config), account_id, self.account_config_cls)

    def is_configured(self, account: ResolvedAccount) -> bool:
        return accounts.is_configured(account)

    def describe_account(self, account: ResolvedAccount) -> Dict[str, Any]:
        """账号状态摘要(不含密钥)"""
        return {
            "channel": self.id,
            "account_id": account.account_id,
            "name": account.name,
            "enabled": account.enabled,
            "configured": self.is_configured(account),
            "webhook_configured": account.config.is_webhook_configured(),
        }

    # ---------- 回调 ----------

    def default_webhook_path(self, account_id: Optional[str] = None) -> str:
        prefix = self.settings.WEBHOOK_PATH_PREFIX
        normalized = accounts.normalize_account_id(account_id)
        if normalized == accounts.DEFAULT_ACCOUNT_ID:
            return f"{prefix}/{self.id}/callback"
        return f"{prefix}/{self.id}/{normalized}/callback"

    def create_webhook_handler(
        self,
        config: ConfigSource,
        account_id: Optional[str] = None,
        path: Optional[str] = None,
        on_message: Optional[MessageCallback] = None,
        on_event: Optional[EventCallback] = None,
        log: Optional[logging.Logger] = None,
    ) -> BaseWebhookHandler:
        """
        创建回调处理器

        Args:
            config: 宿主配置(dict或返回dict的回调,每次请求重新读取)
            account_id: 绑定的账号
            path: 回调路径,默认 /<channel>/callback 或 /<channel>/<account>/callback
            on_message: 消息回调 (CanonicalMessage, account_id)
            on_event: 事件回调 (ChannelEvent, account_id)
            log: 日志对象

        Returns:
            可调用的处理器: handler(WebhookRequest) -> WebhookResponse | None
        """
        return self.webhook_handler_cls(
            self,
            config,
            account_id=account_id,
            path=path,
            on_message=on_message,
            on_event=on_event,
            log=log,
        )

    # ---------- 出站 ----------

    def parse_target(self, to: str) -> OutboundTarget:
        return self.outbound.parse_target(to)

    def send_text(
        self,
        config: ConfigSource,
        to: str,
        text: str,
        account_id: Optional[str] = None,
        reply_to_id: Optional[str] = None,
    ) -> SendResult:
        account = self.resolve_account(config, account_id)
        return self.outbound.send_text(account, to, text, reply_to_id=reply_to_id)

    def send_media(
        self,
        config: ConfigSource,
        to: str,
        text: str,
        media_url: str,
        account_id: Optional[str] = None,
        reply_to_id: Optional[str] = None,
    ) -> SendResult:
        account = self.resolve_account(config, account_id)
        return self.outbound.send_media(account, to, text, media_url, reply_to_id=reply_to_id)

    def send_payload(
        self,
        config: ConfigSource,
        to: str,
        payload: OutboundPayload,
        account_id: Optional[str] = None,
    ) -> SendResult:
        account = self.resolve_account(config, account_id)
        return self.outbound.send_payload(account, to, payload)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} channel={self.id}>"
