"""
QQ(OneBot)渠道模块
"""

from imbridge.channels.qq.client import OneBotClient
from imbridge.channels.qq.outbound import OneBotOutbound
from imbridge.channels.qq.plugin import OneBotAccountConfig, OneBotPlugin
from imbridge.channels.qq.webhook import OneBotWebhookHandler

__all__ = [
    "OneBotAccountConfig",
    "OneBotClient",
    "OneBotOutbound",
    "OneBotPlugin",
    "OneBotWebhookHandler",
]
