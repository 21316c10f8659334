"""
imbridge - 国内IM平台渠道适配层

统一企业微信、钉钉、飞书、QQ(OneBot)、QQ官方机器人的:
- 回调验签/解密
- 多账号配置解析
- access_token缓存
- 消息发送
"""

__version__ = "0.1.0"
