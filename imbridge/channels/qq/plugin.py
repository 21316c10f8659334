"""
QQ(OneBot)渠道插件
"""

from pydantic import Field

from imbridge.channels.base import BaseAccountConfig
from imbridge.channels.plugin import ChannelPlugin
from imbridge.channels.qq.client import OneBotClient
from imbridge.channels.qq.outbound import OneBotOutbound
from imbridge.channels.qq.webhook import OneBotWebhookHandler
from imbridge.channels.registry import CHANNEL_DESCRIPTORS


class OneBotAccountConfig(BaseAccountConfig):
    """OneBot HTTP API 地址与令牌"""
    http_url: str = Field("", alias="httpUrl")
    access_token: str = Field("", alias="accessToken")
    secret: str = Field("", alias="secret")

    REQUIRED_FIELDS = ("http_url",)


class OneBotPlugin(ChannelPlugin):
    """QQ(OneBot)渠道插件"""

    descriptor = CHANNEL_DESCRIPTORS["qq"]
    account_config_cls = OneBotAccountConfig
    webhook_handler_cls = OneBotWebhookHandler

    def create_outbound(self) -> OneBotOutbound:
        client = OneBotClient(self.token_cache, settings=self.settings)
        return OneBotOutbound(client, self.descriptor)
