"""
QQ 官方机器人渠道模块
"""

from imbridge.channels.qqbot.client import QQBotClient
from imbridge.channels.qqbot.outbound import QQBotOutbound
from imbridge.channels.qqbot.plugin import QQBotAccountConfig, QQBotPlugin
from imbridge.channels.qqbot.webhook import QQBotWebhookHandler

__all__ = [
    "QQBotAccountConfig",
    "QQBotClient",
    "QQBotOutbound",
    "QQBotPlugin",
    "QQBotWebhookHandler",
]
