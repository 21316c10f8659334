"""
企业微信渠道插件
"""

from pydantic import AliasChoices, Field

from imbridge.channels.base import BaseAccountConfig
from imbridge.channels.plugin import ChannelPlugin
from imbridge.channels.registry import CHANNEL_DESCRIPTORS
from imbridge.channels.wecom.client import WeComClient
from imbridge.channels.wecom.outbound import WeComOutbound
from imbridge.channels.wecom.webhook import WeComWebhookHandler


class WeComAccountConfig(BaseAccountConfig):
    """企业微信自建应用凭证"""
    corp_id: str = Field("", alias="corpId")
    secret: str = Field("", alias="secret", validation_alias=AliasChoices("secret", "corpSecret"))
    agent_id: str = Field("", alias="agentId")
    token: str = Field("", alias="token")
    encoding_aes_key: str = Field(
        "", alias="encodingAesKey", validation_alias=AliasChoices("encodingAesKey", "encodingAESKey")
    )

    REQUIRED_FIELDS = ("corp_id", "secret", "agent_id")
    WEBHOOK_FIELDS = ("corp_id", "token", "encoding_aes_key")


class WeComPlugin(ChannelPlugin):
    """企业微信渠道插件"""

    descriptor = CHANNEL_DESCRIPTORS["wecom"]
    account_config_cls = WeComAccountConfig
    webhook_handler_cls = WeComWebhookHandler

    def create_outbound(self) -> WeComOutbound:
        client = WeComClient(self.token_cache, settings=self.settings)
        return WeComOutbound(client, self.descriptor)
