"""
钉钉渠道插件
"""

from typing import List

from pydantic import AliasChoices, Field

from imbridge.channels.base import BaseAccountConfig
from imbridge.channels.dingtalk.client import DingTalkClient
from imbridge.channels.dingtalk.outbound import DingTalkOutbound
from imbridge.channels.dingtalk.webhook import DingTalkWebhookHandler
from imbridge.channels.plugin import ChannelPlugin
from imbridge.channels.registry import CHANNEL_DESCRIPTORS


class DingTalkAccountConfig(BaseAccountConfig):
    """钉钉凭证: 企业内部应用(appKey/appSecret) 或 自定义机器人(webhookUrl)"""
    app_key: str = Field("", alias="appKey", validation_alias=AliasChoices("appKey", "clientId"))
    app_secret: str = Field("", alias="appSecret", validation_alias=AliasChoices("appSecret", "clientSecret"))
    robot_code: str = Field("", alias="robotCode")
    agent_id: str = Field("", alias="agentId")
    webhook_url: str = Field("", alias="webhookUrl")
    webhook_secret: str = Field("", alias="webhookSecret")
    sign_secret: str = Field("", alias="signSecret")
    token: str = Field("", alias="token")
    aes_key: str = Field("", alias="aesKey", validation_alias=AliasChoices("aesKey", "encodingAesKey"))

    # 回调: 机器人消息用signSecret或appSecret验签,事件订阅以appKey为owner
    WEBHOOK_FIELDS = ("app_key", "app_secret")

    def missing_required(self) -> List[str]:
        if self.webhook_url:
            return []
        return self.missing_fields(("app_key", "app_secret"))


class DingTalkPlugin(ChannelPlugin):
    """钉钉渠道插件"""

    descriptor = CHANNEL_DESCRIPTORS["dingtalk"]
    account_config_cls = DingTalkAccountConfig
    webhook_handler_cls = DingTalkWebhookHandler

    def create_outbound(self) -> DingTalkOutbound:
        client = DingTalkClient(self.token_cache, settings=self.settings)
        return DingTalkOutbound(client, self.descriptor)
