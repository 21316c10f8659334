"""
渠道回调服务器(Flask)

一个进程挂载所有已配置渠道/账号的回调处理器:
1. 读取 CHANNELS_CONFIG_PATH 指向的渠道配置(修改后自动生效)
2. 每个 (渠道, 账号) 一个回调路径,默认 /<channel>/callback 或 /<channel>/<account>/callback
3. 请求依次交给各处理器,第一个认领的处理器给出响应
"""

import logging
import sys
from typing import Any, Iterable, List, Optional

# 加载环境变量
from dotenv import load_dotenv
load_dotenv()

from flask import Flask, jsonify, make_response, request

from imbridge.channels.base import CanonicalMessage, ChannelEvent
from imbridge.channels.registry import ChannelRegistry
from imbridge.channels.webhook import (
    BaseWebhookHandler,
    EventCallback,
    MessageCallback,
    WebhookRequest,
    WebhookResponse,
)
from imbridge.config.channels import ConfigSource, JsonChannelConfigProvider, channel_section, load_config
from imbridge.config.settings import get_settings

logger = logging.getLogger(__name__)

WEBHOOK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def to_flask_response(result: WebhookResponse):
    response = make_response(result.body, result.status)
    response.headers["Content-Type"] = result.content_type
    for key, value in result.headers.items():
        response.headers[key] = value
    return response


def create_app(handlers: Iterable[BaseWebhookHandler], registry: Optional[ChannelRegistry] = None) -> Flask:
    """
    创建Flask应用

    Args:
        handlers: 回调处理器列表(按顺序尝试)
        registry: 用于 /healthz 展示已启用渠道
    """
    app = Flask(__name__)
    handler_list = list(handlers)

    @app.route("/healthz", methods=["GET"])
    def healthz():
        channels = [d.id for d in registry.list_channels()] if registry else []
        return jsonify({
            "status": "ok",
            "channels": channels,
            "paths": [h.path for h in handler_list],
        })

    @app.route("/", defaults={"subpath": ""}, methods=WEBHOOK_METHODS)
    @app.route("/<path:subpath>", methods=WEBHOOK_METHODS)
    def webhook_entry(subpath: str):
        """回调入口"""
        webhook_request = WebhookRequest.from_flask(request)
        for handler in handler_list:
            result = handler(webhook_request)
            if result is not None:
                return to_flask_response(result)
        return "Not Found", 404

    return app


def build_handlers(
    registry: ChannelRegistry,
    config: ConfigSource,
    on_message: Optional[MessageCallback] = None,
    on_event: Optional[EventCallback] = None,
) -> List[BaseWebhookHandler]:
    """为每个已配置且启用的 (渠道, 账号) 创建回调处理器"""
    handlers = []
    current = load_config(config)

    for descriptor in registry.list_channels():
        if not channel_section(current, descriptor.id):
            continue

        plugin = registry.get_channel_plugin(descriptor.id)
        for account_id in plugin.list_account_ids(config):
            account = plugin.resolve_account(config, account_id)
            if not account.enabled:
                logger.info(f"Skipping disabled account {descriptor.id}/{account_id}")
                continue
            if not account.config.is_webhook_configured():
                logger.warning(f"⚠️ {descriptor.id}/{account_id} webhook credentials incomplete")

            handler = plugin.create_webhook_handler(
                config, account_id=account_id, on_message=on_message, on_event=on_event
            )
            handlers.append(handler)
            logger.info(f"✅ {descriptor.id}/{account_id} callback mounted at {handler.path}")

    return handlers


def log_message(message: CanonicalMessage, account_id: str) -> Any:
    """默认消息回调: 仅记录日志"""
    logger.info(
        f"[{message.platform}/{account_id}] {message.sender_id} -> {message.chat_id}: "
        f"{message.content_text[:50]}"
    )


def log_event(event: ChannelEvent, account_id: str) -> Any:
    logger.info(f"[{event.platform}/{account_id}] event {event.event_type}")


def main():
    """主函数"""
    settings = get_settings()

    # 配置日志
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = JsonChannelConfigProvider(settings.CHANNELS_CONFIG_PATH)
    registry = ChannelRegistry(settings=settings)
    handlers = build_handlers(registry, config, on_message=log_message, on_event=log_event)

    if not handlers:
        logger.error(f"❌ No channel configured in {settings.CHANNELS_CONFIG_PATH}")
        sys.exit(1)

    app = create_app(handlers, registry=registry)

    logger.info(f"🚀 Starting channel callback server on {settings.HOST}:{settings.PORT}...")
    try:
        app.run(host=settings.HOST, port=settings.PORT, debug=settings.DEBUG, threaded=True)
    except KeyboardInterrupt:
        logger.info("Shutting down channel server...")
    finally:
        logger.info("✅ Channel server stopped")


if __name__ == '__main__':
    main()
