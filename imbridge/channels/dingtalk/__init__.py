"""
钉钉渠道模块
"""

from imbridge.channels.dingtalk.client import DingTalkClient, sign_webhook_url
from imbridge.channels.dingtalk.outbound import DingTalkOutbound
from imbridge.channels.dingtalk.plugin import DingTalkAccountConfig, DingTalkPlugin
from imbridge.channels.dingtalk.webhook import DingTalkWebhookHandler

__all__ = [
    "DingTalkAccountConfig",
    "DingTalkClient",
    "DingTalkOutbound",
    "DingTalkPlugin",
    "DingTalkWebhookHandler",
    "sign_webhook_url",
]
