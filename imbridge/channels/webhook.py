"""
Webhook 回调处理基类

与Web框架无关的请求/响应结构 + 处理流程:

    匹配路径 -> 校验方法 -> 解析账号 -> 验签/解密/分发 -> 响应

路径不匹配时返回None("未处理"),多个处理器可以挂在同一个HTTP服务上依次尝试。
异常到HTTP状态码的映射:
- ConfigurationError -> 500
- SignatureError -> 403
- MessageFormatError -> 400
- CryptoError -> 500
应用回调(on_message/on_event)的异常只记录日志,不影响平台要求的应答。
"""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qs, urlsplit

from imbridge.channels.base import CanonicalMessage, ChannelEvent, ResolvedAccount
from imbridge.config.channels import ConfigSource
from imbridge.errors import (
    CallbackError,
    ConfigurationError,
    CryptoError,
    MessageFormatError,
    SignatureError,
)

if TYPE_CHECKING:
    from imbridge.channels.plugin import ChannelPlugin

logger = logging.getLogger(__name__)

MessageCallback = Callable[[CanonicalMessage, str], Any]
EventCallback = Callable[[ChannelEvent, str], Any]


def normalize_path(path: str) -> str:
    path = "/" + (path or "").split("?", 1)[0].strip("/")
    return path


class WebhookRequest:
    """回调请求(方法、带query的URL、头、原始body)"""

    def __init__(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[bytes, str] = b"",
    ):
        self.method = (method or "").upper()
        self.url = url or "/"
        self.headers = {str(k).lower(): v for k, v in (headers or {}).items()}
        self.body = body.encode("utf-8") if isinstance(body, str) else (body or b"")

        parts = urlsplit(self.url)
        self.path = parts.path or "/"
        self.query: Dict[str, str] = {
            key: values[0] for key, values in parse_qs(parts.query, keep_blank_values=True).items()
        }

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @classmethod
    def from_flask(cls, request) -> "WebhookRequest":
        """从Flask/werkzeug请求构造"""
        query = request.query_string.decode("latin-1")
        url = request.path + (f"?{query}" if query else "")
        return cls(request.method, url, dict(request.headers), request.get_data())


@dataclass
class WebhookResponse:
    """回调响应"""
    status: int = 200
    body: Union[str, bytes] = ""
    content_type: str = "text/plain; charset=utf-8"
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def text(cls, body: str, status: int = 200) -> "WebhookResponse":
        return cls(status=status, body=body)

    @classmethod
    def json(cls, data: Any, status: int = 200) -> "WebhookResponse":
        return cls(
            status=status,
            body=json.dumps(data, ensure_ascii=False),
            content_type="application/json; charset=utf-8",
        )

    @classmethod
    def xml(cls, body: str, status: int = 200) -> "WebhookResponse":
        return cls(status=status, body=body, content_type="application/xml; charset=utf-8")

    @property
    def text_body(self) -> str:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body


async def _await(awaitable):
    return await awaitable


class BaseWebhookHandler(ABC):
    """
    平台回调处理器基类

    子类实现 handle(request, account),按平台协议完成验签、解密、解析与应答。
    """

    allowed_methods: Tuple[str, ...] = ("POST",)

    def __init__(
        self,
        plugin: "ChannelPlugin",
        config: ConfigSource,
        account_id: Optional[str] = None,
        path: Optional[str] = None,
        on_message: Optional[MessageCallback] = None,
        on_event: Optional[EventCallback] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.plugin = plugin
        self.config = config
        self.account_id = account_id
        self.path = normalize_path(path or plugin.default_webhook_path(account_id))
        self.on_message = on_message
        self.on_event = on_event
        self.log = log or logger

    @property
    def platform(self) -> str:
        return self.plugin.id

    def matches(self, request: WebhookRequest) -> bool:
        return normalize_path(request.path) == self.path

    def __call__(self, request: WebhookRequest) -> Optional[WebhookResponse]:
        """处理请求;路径不匹配时返回None"""
        if not self.matches(request):
            return None

        if request.method not in self.allowed_methods:
            return self.error_response(405, "Method Not Allowed")

        try:
            account = self.resolve_account()
            return self.handle(request, account)
        except ConfigurationError as e:
            self.log.error(f"[{self.platform}] configuration error: {e}")
            return self.error_response(500, "Configuration Error")
        except SignatureError as e:
            self.log.warning(f"[{self.platform}] signature verification failed: {e}")
            return self.error_response(403, f"Forbidden: {e}")
        except MessageFormatError as e:
            self.log.warning(f"[{self.platform}] malformed callback: {e}")
            return self.error_response(400, f"Bad Request: {e}")
        except CryptoError as e:
            self.log.error(f"[{self.platform}] decrypt failed: {type(e).__name__}: {e}")
            return self.error_response(500, "Decrypt Error")
        except Exception as e:
            self.log.error(f"[{self.platform}] callback handling failed: {e}", exc_info=True)
            return self.error_response(500, "Internal Error")

    def error_response(self, status: int, message: str) -> WebhookResponse:
        """错误应答格式,平台要求JSON时重写"""
        return WebhookResponse.text(message, status)

    def resolve_account(self) -> ResolvedAccount:
        """解析账号并检查回调所需凭证"""
        account = self.plugin.resolve_account(self.config, self.account_id)
        if not account.enabled:
            raise ConfigurationError(f"{self.platform} account '{account.account_id}' is disabled")

        missing = account.config.missing_webhook()
        if missing:
            raise ConfigurationError(
                f"{self.platform} account '{account.account_id}' missing {', '.join(missing)}"
            )
        return account

    @abstractmethod
    def handle(self, request: WebhookRequest, account: ResolvedAccount) -> WebhookResponse:
        """按平台协议处理已匹配的请求"""
        pass

    def dispatch_message(self, message: CanonicalMessage) -> Any:
        """调用on_message,返回回调结果(异常时为None)"""
        self.log.info(
            f"[{self.platform}] message {message.message_id} from {message.sender_id} "
            f"({message.chat_type}) account={message.account_id}"
        )
        return self._invoke(self.on_message, message, message.account_id)

    def dispatch_event(self, event: ChannelEvent) -> Any:
        self.log.info(f"[{self.platform}] event {event.event_type} account={event.account_id}")
        return self._invoke(self.on_event, event, event.account_id)

    def _invoke(self, callback: Optional[Callable], item: Any, account_id: str) -> Any:
        if callback is None:
            return None
        try:
            result = callback(item, account_id)
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
            return result
        except Exception as e:
            error = CallbackError(self.platform, e)
            self.log.error(f"{error}", exc_info=True)
            return None
