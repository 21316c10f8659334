"""
飞书渠道模块
"""

from imbridge.channels.feishu.client import FeishuClient
from imbridge.channels.feishu.outbound import FeishuOutbound, build_post_content
from imbridge.channels.feishu.plugin import FeishuAccountConfig, FeishuPlugin
from imbridge.channels.feishu.webhook import FeishuWebhookHandler

__all__ = [
    "FeishuAccountConfig",
    "FeishuClient",
    "FeishuOutbound",
    "FeishuPlugin",
    "FeishuWebhookHandler",
    "build_post_content",
]
