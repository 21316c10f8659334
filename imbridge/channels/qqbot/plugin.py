"""
QQ 官方机器人渠道插件
"""

from pydantic import AliasChoices, Field

from imbridge.channels.base import BaseAccountConfig
from imbridge.channels.plugin import ChannelPlugin
from imbridge.channels.qqbot.client import QQBotClient
from imbridge.channels.qqbot.outbound import QQBotOutbound
from imbridge.channels.qqbot.webhook import QQBotWebhookHandler
from imbridge.channels.registry import CHANNEL_DESCRIPTORS


class QQBotAccountConfig(BaseAccountConfig):
    """QQ 开放平台机器人凭证"""
    app_id: str = Field("", alias="appId")
    client_secret: str = Field(
        "", alias="clientSecret", validation_alias=AliasChoices("clientSecret", "appSecret")
    )
    sandbox: bool = Field(False, alias="sandbox")

    REQUIRED_FIELDS = ("app_id", "client_secret")
    WEBHOOK_FIELDS = ("client_secret",)


class QQBotPlugin(ChannelPlugin):
    """QQ 官方机器人渠道插件"""

    descriptor = CHANNEL_DESCRIPTORS["qqbot"]
    account_config_cls = QQBotAccountConfig
    webhook_handler_cls = QQBotWebhookHandler

    def create_outbound(self) -> QQBotOutbound:
        client = QQBotClient(self.token_cache, settings=self.settings)
        return QQBotOutbound(client, self.descriptor)
