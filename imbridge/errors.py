"""
渠道适配层异常定义

所有异常继承自ChannelAdapterError,Webhook处理器据此映射HTTP状态码:
- ConfigurationError -> 500
- SignatureError -> 403
- CryptoError -> 500
- MessageFormatError -> 400
"""

from typing import Optional


class ChannelAdapterError(Exception):
    """渠道适配器异常基类"""
    pass


class ConfigurationError(ChannelAdapterError):
    """账号凭证缺失或不完整"""
    pass


class SignatureError(ChannelAdapterError):
    """签名校验失败"""
    pass


class MessageFormatError(ChannelAdapterError):
    """回调报文格式错误"""
    pass


class CryptoError(ChannelAdapterError):
    """加解密异常基类"""
    pass


class InvalidKeyError(CryptoError):
    """AES密钥长度或编码错误"""
    pass


class DecryptError(CryptoError):
    """密文无法解密"""
    pass


class DecodeError(DecryptError):
    """base64解码失败"""
    pass


class IntegrityError(DecryptError):
    """解密后结构非法或归属ID(corpId/appKey)不匹配"""
    pass


class VendorApiError(ChannelAdapterError):
    """平台API返回错误"""

    def __init__(self, platform: str, code, message: str):
        self.platform = platform
        self.code = code
        self.message = message
        super().__init__(f"{platform} API Error {code}: {message}")


class TransportError(ChannelAdapterError):
    """调用平台API时网络异常"""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        self.message = message
        super().__init__(f"{platform} transport error: {message}")


class CallbackError(ChannelAdapterError):
    """应用层 on_message/on_event 回调抛出异常"""

    def __init__(self, platform: str, cause: Optional[BaseException] = None):
        self.platform = platform
        self.cause = cause
        super().__init__(f"{platform} callback failed: {cause!r}")
