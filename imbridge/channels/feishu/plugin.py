"""
飞书渠道插件
"""

from pydantic import Field

from imbridge.channels.base import BaseAccountConfig
from imbridge.channels.feishu.client import FeishuClient
from imbridge.channels.feishu.outbound import FeishuOutbound
from imbridge.channels.feishu.webhook import FeishuWebhookHandler
from imbridge.channels.plugin import ChannelPlugin
from imbridge.channels.registry import CHANNEL_DESCRIPTORS


class FeishuAccountConfig(BaseAccountConfig):
    """飞书自建应用凭证"""
    app_id: str = Field("", alias="appId")
    app_secret: str = Field("", alias="appSecret")
    encrypt_key: str = Field("", alias="encryptKey")
    verification_token: str = Field("", alias="verificationToken")
    domain: str = Field("feishu", alias="domain")  # feishu / lark

    REQUIRED_FIELDS = ("app_id", "app_secret")
    WEBHOOK_FIELDS = ("app_id", "app_secret")


class FeishuPlugin(ChannelPlugin):
    """飞书渠道插件"""

    descriptor = CHANNEL_DESCRIPTORS["feishu"]
    account_config_cls = FeishuAccountConfig
    webhook_handler_cls = FeishuWebhookHandler

    def create_outbound(self) -> FeishuOutbound:
        client = FeishuClient(self.token_cache, settings=self.settings)
        return FeishuOutbound(client, self.descriptor)
