"""
出站发送单元测试

通过 patch requests.request 模拟平台API,测试各平台:
- 目标解析后的请求地址与请求体
- access_token 获取与缓存
- 平台错误码 / HTTP错误 / 网络异常的处理
"""

import base64
import hashlib
import json
import pytest
import os
import sys
from unittest.mock import patch

import requests

# 添加项目根目录到 path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from imbridge.channels.base import MessageType, OutboundPayload
from imbridge.channels.registry import ChannelRegistry
from imbridge.channels.token_cache import TokenCacheService
from imbridge.config.settings import get_settings
from imbridge.errors import ConfigurationError, TransportError, VendorApiError


def json_response(payload, status=200):
    """构造requests.Response"""
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(payload).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    return response


def media_response(content=b"\x89PNG\r\n", content_type="image/png", status=200):
    """构造媒体下载响应"""
    response = requests.Response()
    response.status_code = status
    response._content = content
    response.headers["Content-Type"] = content_type
    return response


@pytest.fixture
def token_cache():
    return TokenCacheService(refresh_margin=300)


@pytest.fixture
def registry(token_cache):
    return ChannelRegistry(token_cache=token_cache)


@pytest.fixture
def mock_request():
    with patch("imbridge.channels.http.requests.request") as mocked:
        yield mocked


def call(mock_request, index):
    """返回第index次请求的 (method, url, kwargs)"""
    args, kwargs = mock_request.call_args_list[index]
    return args[0], args[1], kwargs


# ==================== 企业微信测试 ====================

WECOM_CONFIG = {
    "channels": {
        "wecom": {
            "corpId": "ww_corp",
            "secret": "corp_secret",
            "agentId": "1000002",
            "accounts": {"sales": {"corpId": "ww_sales", "secret": "sales_secret", "agentId": 1000003}},
        }
    }
}


class TestWeComOutbound:
    """企业微信发送测试"""

    @pytest.fixture
    def plugin(self, registry):
        return registry.get_channel_plugin("wecom")

    def test_send_text_to_party(self, plugin, mock_request):
        """测试发送文本到部门"""
        mock_request.side_effect = [
            json_response({"errcode": 0, "access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 0, "errmsg": "ok", "msgid": "MSG1"}),
        ]

        result = plugin.send_text(WECOM_CONFIG, "party:2", "hello")

        method, url, kwargs = call(mock_request, 0)
        assert method == "GET"
        assert url.endswith("/gettoken")
        assert kwargs["params"] == {"corpid": "ww_corp", "corpsecret": "corp_secret"}
        assert kwargs["timeout"] == get_settings().HTTP_TIMEOUT

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/message/send")
        assert kwargs["params"] == {"access_token": "ACCESS"}
        assert kwargs["json"] == {
            "msgtype": "text",
            "text": {"content": "hello"},
            "toparty": "2",
            "agentid": 1000002,
        }

        assert result.message_id == "wecom_MSG1"
        assert result.chat_id == "party:2"
        assert result.channel == "wecom"

    def test_token_cached_between_sends(self, plugin, mock_request):
        """测试第二次发送不再获取token"""
        mock_request.side_effect = [
            json_response({"access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 0, "msgid": "MSG1"}),
            json_response({"errcode": 0, "msgid": "MSG2"}),
        ]
        plugin.send_text(WECOM_CONFIG, "zhangsan", "a")
        plugin.send_text(WECOM_CONFIG, "zhangsan", "b")
        assert mock_request.call_count == 3
        assert call(mock_request, 2)[2]["json"]["touser"] == "zhangsan"

    def test_markdown_to_appchat(self, plugin, mock_request):
        """测试markdown发送到群聊"""
        mock_request.side_effect = [
            json_response({"access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 0, "errmsg": "ok"}),
        ]
        result = plugin.send_text(WECOM_CONFIG, "chat:wrOgAAAA", "**周报**")

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/appchat/send")
        assert kwargs["json"]["chatid"] == "wrOgAAAA"
        assert kwargs["json"]["msgtype"] == "markdown"
        assert result.message_id.startswith("wecom_")

    def test_named_account(self, plugin, mock_request):
        """测试使用命名账号凭证"""
        mock_request.side_effect = [
            json_response({"access_token": "SALES", "expires_in": 7200}),
            json_response({"errcode": 0, "msgid": "MSG1"}),
        ]
        plugin.send_text(WECOM_CONFIG, "lisi", "hi", account_id="sales")
        assert call(mock_request, 0)[2]["params"]["corpid"] == "ww_sales"
        assert call(mock_request, 1)[2]["json"]["agentid"] == 1000003

    def test_send_media_embeds_link(self, plugin, mock_request):
        """测试媒体以markdown图片嵌入"""
        mock_request.side_effect = [
            json_response({"access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 0, "msgid": "MSG1"}),
        ]
        plugin.send_media(WECOM_CONFIG, "zhangsan", "看图", "https://example.com/a.png")
        body = call(mock_request, 1)[2]["json"]
        assert body["msgtype"] == "markdown"
        assert body["markdown"]["content"] == "看图\n\n![图片](https://example.com/a.png)"

    def test_token_expired_invalidates(self, plugin, mock_request, token_cache):
        """测试token过期错误码使缓存失效"""
        mock_request.side_effect = [
            json_response({"access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 42001, "errmsg": "access_token expired"}),
        ]
        with pytest.raises(VendorApiError) as exc_info:
            plugin.send_text(WECOM_CONFIG, "zhangsan", "hi")
        assert exc_info.value.code == 42001
        assert token_cache.peek("wecom:ww_corp:1000002") is None

    def test_missing_credentials(self, plugin, mock_request):
        """测试凭证缺失时不发请求"""
        with pytest.raises(ConfigurationError):
            plugin.send_text({"channels": {"wecom": {"corpId": "ww_corp"}}}, "zhangsan", "hi")
        mock_request.assert_not_called()

    def test_http_error(self, plugin, mock_request):
        """测试HTTP错误"""
        mock_request.side_effect = [json_response({"message": "bad gateway"}, status=502)]
        with pytest.raises(VendorApiError) as exc_info:
            plugin.send_text(WECOM_CONFIG, "zhangsan", "hi")
        assert exc_info.value.code == 502

    def test_transport_error(self, plugin, mock_request):
        """测试网络异常"""
        mock_request.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(TransportError):
            plugin.send_text(WECOM_CONFIG, "zhangsan", "hi")

    def test_upload_image_then_send(self, plugin, mock_request):
        """测试显式image类型先上传临时素材再按media_id发送"""
        mock_request.side_effect = [
            media_response(),
            json_response({"access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 0, "type": "image", "media_id": "MEDIA1"}),
            json_response({"errcode": 0, "msgid": "MSG1"}),
        ]
        payload = OutboundPayload(media_url="https://example.com/a.png", msg_type=MessageType.IMAGE)

        result = plugin.send_payload(WECOM_CONFIG, "zhangsan", payload)

        method, url, kwargs = call(mock_request, 0)
        assert (method, url) == ("GET", "https://example.com/a.png")

        method, url, kwargs = call(mock_request, 2)
        assert url.endswith("/media/upload")
        assert kwargs["params"] == {"access_token": "ACCESS", "type": "image"}
        assert kwargs["files"]["media"] == ("a.png", b"\x89PNG\r\n", "image/png")

        assert call(mock_request, 3)[2]["json"] == {
            "msgtype": "image",
            "image": {"media_id": "MEDIA1"},
            "touser": "zhangsan",
            "agentid": 1000002,
        }
        assert result.message_id == "wecom_MSG1"

    def test_file_with_caption(self, plugin, mock_request):
        """测试文件消息的说明文字先单独发送"""
        mock_request.side_effect = [
            json_response({"access_token": "ACCESS", "expires_in": 7200}),
            json_response({"errcode": 0, "msgid": "TEXT1"}),
            media_response(b"%PDF-1.4", "application/pdf"),
            json_response({"errcode": 0, "type": "file", "media_id": "MEDIA2"}),
            json_response({"errcode": 0, "msgid": "FILE1"}),
        ]
        payload = OutboundPayload(text="周报", media_url="https://example.com/report.pdf", msg_type=MessageType.FILE)

        result = plugin.send_payload(WECOM_CONFIG, "party:2", payload)

        assert call(mock_request, 1)[2]["json"]["text"] == {"content": "周报"}
        assert call(mock_request, 3)[2]["params"]["type"] == "file"
        body = call(mock_request, 4)[2]["json"]
        assert body["msgtype"] == "file"
        assert body["file"] == {"media_id": "MEDIA2"}
        assert body["toparty"] == "2"
        assert result.message_id == "wecom_FILE1"

    def test_group_robot_webhook(self, plugin, mock_request):
        """测试群机器人webhook不需要应用凭证"""
        mock_request.side_effect = [json_response({"errcode": 0, "errmsg": "ok"})]
        url = "https://qyapi.weixin.qq.com/cgi-bin/webhook/send?key=ROBOTKEY"

        result = plugin.send_text({"channels": {"wecom": {}}}, f"webhook:{url}", "hello")

        method, called_url, kwargs = call(mock_request, 0)
        assert (method, called_url) == ("POST", url)
        assert kwargs["json"] == {"msgtype": "text", "text": {"content": "hello"}}
        assert result.message_id.startswith("wecom_")

    def test_group_robot_image_base64(self, plugin, mock_request):
        """测试群机器人图片以base64+md5发送"""
        mock_request.side_effect = [
            media_response(b"image-bytes"),
            json_response({"errcode": 0, "errmsg": "ok"}),
        ]
        url = "https://qyapi.weixin.qq.com/cgi-bin/webhook/send?key=ROBOTKEY"
        payload = OutboundPayload(media_url="https://example.com/a.png", msg_type=MessageType.IMAGE)

        plugin.send_payload(WECOM_CONFIG, url, payload)

        body = call(mock_request, 1)[2]["json"]
        assert body == {
            "msgtype": "image",
            "image": {
                "base64": base64.b64encode(b"image-bytes").decode("ascii"),
                "md5": hashlib.md5(b"image-bytes").hexdigest(),
            },
        }

    def test_group_robot_file(self, plugin, mock_request):
        """测试群机器人文件先用key上传"""
        mock_request.side_effect = [
            media_response(b"data", "application/zip"),
            json_response({"errcode": 0, "type": "file", "media_id": "ROBOTMEDIA"}),
            json_response({"errcode": 0, "errmsg": "ok"}),
        ]
        url = "https://qyapi.weixin.qq.com/cgi-bin/webhook/send?key=ROBOTKEY"
        payload = OutboundPayload(media_url="https://example.com/logs.zip", msg_type=MessageType.FILE)

        plugin.send_payload(WECOM_CONFIG, f"webhook:{url}", payload)

        method, upload_url, kwargs = call(mock_request, 1)
        assert upload_url.endswith("/webhook/upload_media")
        assert kwargs["params"] == {"key": "ROBOTKEY", "type": "file"}
        assert call(mock_request, 2)[2]["json"] == {"msgtype": "file", "file": {"media_id": "ROBOTMEDIA"}}

    def test_download_failure(self, plugin, mock_request):
        """测试媒体下载失败"""
        mock_request.side_effect = [media_response(b"", status=404)]
        payload = OutboundPayload(media_url="https://example.com/missing.png", msg_type=MessageType.IMAGE)
        with pytest.raises(VendorApiError) as exc_info:
            plugin.send_payload(WECOM_CONFIG, "zhangsan", payload)
        assert exc_info.value.code == 404


# ==================== 钉钉测试 ====================

DINGTALK_CONFIG = {
    "channels": {
        "dingtalk": {
            "appKey": "ding_app",
            "appSecret": "app_secret",
            "agentId": "2000001",
            "accounts": {
                "robot": {
                    "webhookUrl": "https://oapi.dingtalk.com/robot/send?access_token=ROBOT",
                    "webhookSecret": "SECxxx",
                },
            },
        }
    }
}


class TestDingTalkOutbound:
    """钉钉发送测试"""

    @pytest.fixture
    def plugin(self, registry):
        return registry.get_channel_plugin("dingtalk")

    def test_default_webhook_signed(self, plugin, mock_request):
        """测试无前缀目标走配置的机器人webhook并加签"""
        mock_request.side_effect = [json_response({"errcode": 0, "errmsg": "ok"})]

        result = plugin.send_text(DINGTALK_CONFIG, "anyone", "hello", account_id="robot")

        method, url, kwargs = call(mock_request, 0)
        assert method == "POST"
        assert url.startswith("https://oapi.dingtalk.com/robot/send?access_token=ROBOT&timestamp=")
        assert "&sign=" in url
        assert kwargs["json"] == {"msgtype": "text", "text": {"content": "hello"}}
        assert result.message_id.startswith("dingtalk_")

    def test_session_webhook(self, plugin, mock_request):
        """测试sessionWebhook不加签"""
        mock_request.side_effect = [json_response({"errcode": 0})]
        plugin.send_text(DINGTALK_CONFIG, "session:https://oapi.dingtalk.com/robot/sendBySession?session=S", "hi")
        url = call(mock_request, 0)[1]
        assert url == "https://oapi.dingtalk.com/robot/sendBySession?session=S"

    def test_group_message(self, plugin, mock_request):
        """测试企业内部机器人群消息"""
        mock_request.side_effect = [
            json_response({"errcode": 0, "access_token": "DTOKEN", "expires_in": 7200}),
            json_response({"processQueryKey": "PQK"}),
        ]
        result = plugin.send_text(DINGTALK_CONFIG, "group:cidABC", "## 标题\n内容")

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/v1.0/robot/groupMessages/send")
        assert kwargs["headers"] == {"x-acs-dingtalk-access-token": "DTOKEN"}
        assert kwargs["json"]["openConversationId"] == "cidABC"
        assert kwargs["json"]["robotCode"] == "ding_app"
        assert kwargs["json"]["msgKey"] == "sampleMarkdown"
        assert json.loads(kwargs["json"]["msgParam"])["title"] == "标题"
        assert result.message_id == "dingtalk_PQK"

    def test_work_notice(self, plugin, mock_request):
        """测试工作通知"""
        mock_request.side_effect = [
            json_response({"errcode": 0, "access_token": "DTOKEN", "expires_in": 7200}),
            json_response({"errcode": 0, "task_id": 256271667526}),
        ]
        result = plugin.send_text(DINGTALK_CONFIG, "user:manager1", "hello")

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/topapi/message/corpconversation/asyncsend_v2")
        assert kwargs["json"]["agent_id"] == 2000001
        assert kwargs["json"]["userid_list"] == "manager1"
        assert result.message_id == "dingtalk_256271667526"

    def test_no_default_route(self, plugin, mock_request):
        """测试无前缀且无webhookUrl/agentId"""
        config = {"channels": {"dingtalk": {"appKey": "k", "appSecret": "s"}}}
        with pytest.raises(ConfigurationError):
            plugin.send_text(config, "someone", "hi")
        mock_request.assert_not_called()

    def test_vendor_error(self, plugin, mock_request):
        """测试平台错误码"""
        mock_request.side_effect = [json_response({"errcode": 310000, "errmsg": "sign not match"})]
        with pytest.raises(VendorApiError) as exc_info:
            plugin.send_text(DINGTALK_CONFIG, "anyone", "hi", account_id="robot")
        assert exc_info.value.code == 310000

    def test_work_notice_image_upload(self, plugin, mock_request):
        """测试工作通知图片先上传拿media_id"""
        mock_request.side_effect = [
            media_response(),
            json_response({"errcode": 0, "access_token": "DTOKEN", "expires_in": 7200}),
            json_response({"errcode": 0, "type": "image", "media_id": "@lADP"}),
            json_response({"errcode": 0, "task_id": 1}),
        ]
        payload = OutboundPayload(media_url="https://example.com/a.png", msg_type=MessageType.IMAGE)

        plugin.send_payload(DINGTALK_CONFIG, "user:manager1", payload)

        method, url, kwargs = call(mock_request, 2)
        assert url.endswith("/media/upload")
        assert kwargs["params"] == {"access_token": "DTOKEN", "type": "image"}
        assert "media" in kwargs["files"]
        assert call(mock_request, 3)[2]["json"]["msg"] == {"msgtype": "image", "image": {"media_id": "@lADP"}}

    def test_group_image_uses_photo_url(self, plugin, mock_request):
        """测试群图片消息直接使用图片URL"""
        mock_request.side_effect = [
            json_response({"errcode": 0, "access_token": "DTOKEN", "expires_in": 7200}),
            json_response({"processQueryKey": "PQK"}),
        ]
        payload = OutboundPayload(media_url="https://example.com/a.png", msg_type=MessageType.IMAGE)

        plugin.send_payload(DINGTALK_CONFIG, "group:cidABC", payload)

        body = call(mock_request, 1)[2]["json"]
        assert body["msgKey"] == "sampleImageMsg"
        assert json.loads(body["msgParam"]) == {"photoURL": "https://example.com/a.png"}

    def test_group_file_upload(self, plugin, mock_request):
        """测试群文件消息"""
        mock_request.side_effect = [
            media_response(b"%PDF", "application/pdf"),
            json_response({"errcode": 0, "access_token": "DTOKEN", "expires_in": 7200}),
            json_response({"errcode": 0, "media_id": "@file"}),
            json_response({"processQueryKey": "PQK"}),
        ]
        payload = OutboundPayload(media_url="https://example.com/report.pdf", msg_type=MessageType.FILE)

        plugin.send_payload(DINGTALK_CONFIG, "group:cidABC", payload)

        assert call(mock_request, 2)[2]["params"]["type"] == "file"
        body = call(mock_request, 3)[2]["json"]
        assert body["msgKey"] == "sampleFile"
        assert json.loads(body["msgParam"]) == {"mediaId": "@file", "fileName": "report.pdf", "fileType": "pdf"}

    def test_robot_webhook_media_embedded(self, plugin, mock_request):
        """测试机器人webhook不支持media_id时嵌入链接"""
        mock_request.side_effect = [json_response({"errcode": 0})]
        payload = OutboundPayload(media_url="https://example.com/a.png", msg_type=MessageType.IMAGE)

        plugin.send_payload(DINGTALK_CONFIG, "anyone", payload, account_id="robot")

        assert mock_request.call_count == 1
        body = call(mock_request, 0)[2]["json"]
        assert body["msgtype"] == "markdown"
        assert body["markdown"]["text"] == "![图片](https://example.com/a.png)"


# ==================== 飞书测试 ====================

FEISHU_CONFIG = {
    "channels": {
        "feishu": {
            "appId": "cli_app",
            "appSecret": "app_secret",
            "accounts": {"global": {"appId": "cli_lark", "appSecret": "s", "domain": "lark"}},
        }
    }
}


class TestFeishuOutbound:
    """飞书发送测试"""

    @pytest.fixture
    def plugin(self, registry):
        return registry.get_channel_plugin("feishu")

    def test_send_text_to_open_id(self, plugin, mock_request):
        """测试发送文本到open_id"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_1"}}),
        ]
        result = plugin.send_text(FEISHU_CONFIG, "ou_user", "hello")

        method, url, kwargs = call(mock_request, 0)
        assert url == "https://open.feishu.cn/open-apis/auth/v3/tenant_access_token/internal"
        assert kwargs["json"] == {"app_id": "cli_app", "app_secret": "app_secret"}

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/im/v1/messages")
        assert kwargs["params"] == {"receive_id_type": "open_id"}
        assert kwargs["headers"] == {"Authorization": "Bearer TENANT"}
        assert kwargs["json"]["msg_type"] == "text"
        assert json.loads(kwargs["json"]["content"]) == {"text": "hello"}
        assert result.message_id == "feishu_om_1"

    def test_reply_message(self, plugin, mock_request):
        """测试目标带 :om_ 时回复消息"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_2"}}),
        ]
        plugin.send_text(FEISHU_CONFIG, "oc_group:om_parent", "收到")
        assert call(mock_request, 1)[1].endswith("/im/v1/messages/om_parent/reply")

    def test_markdown_becomes_post(self, plugin, mock_request):
        """测试markdown转为富文本"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_3"}}),
        ]
        plugin.send_text(FEISHU_CONFIG, "oc_group", "详见 [文档](https://example.com/doc)")

        body = call(mock_request, 1)[2]["json"]
        assert body["msg_type"] == "post"
        content = json.loads(body["content"])["zh_cn"]["content"]
        assert content[0] == [
            {"tag": "text", "text": "详见 "},
            {"tag": "a", "text": "文档", "href": "https://example.com/doc"},
        ]

    def test_lark_domain(self, plugin, mock_request):
        """测试Lark国际版地址"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_4"}}),
        ]
        plugin.send_text(FEISHU_CONFIG, "ou_user", "hi", account_id="global")
        assert call(mock_request, 0)[1].startswith("https://open.larksuite.com/open-apis")

    def test_token_invalid_code(self, plugin, mock_request, token_cache):
        """测试token失效错误码"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 99991663, "msg": "tenant access token invalid"}),
        ]
        with pytest.raises(VendorApiError):
            plugin.send_text(FEISHU_CONFIG, "ou_user", "hi")
        assert token_cache.peek("feishu:cli_app") is None

    def test_upload_image(self, plugin, mock_request):
        """测试图片先上传拿image_key"""
        mock_request.side_effect = [
            media_response(),
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"image_key": "img_v2_x"}}),
            json_response({"code": 0, "data": {"message_id": "om_5"}}),
        ]
        payload = OutboundPayload(media_url="https://example.com/a.png", msg_type=MessageType.IMAGE)

        result = plugin.send_payload(FEISHU_CONFIG, "ou_user", payload)

        method, url, kwargs = call(mock_request, 2)
        assert url.endswith("/im/v1/images")
        assert kwargs["headers"] == {"Authorization": "Bearer TENANT"}
        assert kwargs["data"] == {"image_type": "message"}
        assert kwargs["files"]["image"][0] == "a.png"

        body = call(mock_request, 3)[2]["json"]
        assert body["msg_type"] == "image"
        assert json.loads(body["content"]) == {"image_key": "img_v2_x"}
        assert result.message_id == "feishu_om_5"

    def test_upload_file_with_caption(self, plugin, mock_request):
        """测试文件上传,file_type按扩展名推断"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_6"}}),
            media_response(b"docx", "application/octet-stream"),
            json_response({"code": 0, "data": {"file_key": "file_v2_x"}}),
            json_response({"code": 0, "data": {"message_id": "om_7"}}),
        ]
        payload = OutboundPayload(text="报告", media_url="https://example.com/report.docx", msg_type=MessageType.FILE)

        result = plugin.send_payload(FEISHU_CONFIG, "oc_group", payload)

        assert json.loads(call(mock_request, 1)[2]["json"]["content"]) == {"text": "报告"}
        method, url, kwargs = call(mock_request, 3)
        assert url.endswith("/im/v1/files")
        assert kwargs["data"] == {"file_type": "doc", "file_name": "report.docx"}
        body = call(mock_request, 4)[2]["json"]
        assert body["msg_type"] == "file"
        assert json.loads(body["content"]) == {"file_key": "file_v2_x"}
        assert result.message_id == "feishu_om_7"

    def test_interactive_card(self, plugin, mock_request):
        """测试发送交互卡片"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_8"}}),
        ]
        card = {
            "header": {"title": {"tag": "plain_text", "content": "审批"}},
            "elements": [{"tag": "div", "text": {"tag": "lark_md", "content": "**请假** 2天"}}],
        }

        plugin.send_payload(FEISHU_CONFIG, "oc_group", OutboundPayload(card=card))

        body = call(mock_request, 1)[2]["json"]
        assert body["msg_type"] == "interactive"
        assert json.loads(body["content"]) == card

    def test_card_type_wraps_markdown(self, plugin, mock_request):
        """测试card类型但没有卡片JSON时用markdown元素承载文本"""
        mock_request.side_effect = [
            json_response({"code": 0, "tenant_access_token": "TENANT", "expire": 7200}),
            json_response({"code": 0, "data": {"message_id": "om_9"}}),
        ]
        plugin.send_payload(FEISHU_CONFIG, "oc_group", OutboundPayload(text="**告警**", msg_type=MessageType.CARD))

        content = json.loads(call(mock_request, 1)[2]["json"]["content"])
        assert content["elements"] == [{"tag": "markdown", "content": "**告警**"}]


# ==================== QQ(OneBot)测试 ====================

ONEBOT_CONFIG = {
    "channels": {"qq": {"httpUrl": "http://127.0.0.1:3000/", "accessToken": "onebot_token"}}
}


class TestOneBotOutbound:
    """OneBot发送测试"""

    @pytest.fixture
    def plugin(self, registry):
        return registry.get_channel_plugin("qq")

    def test_send_group(self, plugin, mock_request):
        """测试发送群消息"""
        mock_request.side_effect = [json_response({"status": "ok", "retcode": 0, "data": {"message_id": 123}})]
        result = plugin.send_text(ONEBOT_CONFIG, "group:987654", "hello")

        method, url, kwargs = call(mock_request, 0)
        assert url == "http://127.0.0.1:3000/send_group_msg"
        assert kwargs["headers"] == {"Authorization": "Bearer onebot_token"}
        assert kwargs["json"] == {"group_id": 987654, "message": "hello", "auto_escape": False}
        assert result.message_id == "qq_123"
        assert result.chat_id == "group:987654"

    def test_send_private_with_image(self, plugin, mock_request):
        """测试私聊图片"""
        mock_request.side_effect = [json_response({"status": "ok", "retcode": 0, "data": {"message_id": 7}})]
        plugin.send_media(ONEBOT_CONFIG, "private:10001", "看[图]", "https://example.com/a.png")

        method, url, kwargs = call(mock_request, 0)
        assert url.endswith("/send_private_msg")
        assert kwargs["json"]["user_id"] == 10001
        assert kwargs["json"]["message"] == "看&#91;图&#93;\n[CQ:image,file=https://example.com/a.png]"

    def test_reply(self, plugin, mock_request):
        """测试回复消息"""
        mock_request.side_effect = [json_response({"status": "ok", "retcode": 0, "data": {"message_id": 8}})]
        plugin.send_text(ONEBOT_CONFIG, "10001", "ok", reply_to_id="55")
        assert call(mock_request, 0)[2]["json"]["message"] == "[CQ:reply,id=55]ok"

    def test_failed_status(self, plugin, mock_request):
        """测试动作失败"""
        mock_request.side_effect = [json_response({"status": "failed", "retcode": 100, "wording": "群不存在"})]
        with pytest.raises(VendorApiError) as exc_info:
            plugin.send_text(ONEBOT_CONFIG, "group:1", "hello")
        assert exc_info.value.code == 100

    def test_empty_target(self, plugin, mock_request):
        """测试空目标"""
        with pytest.raises(ValueError):
            plugin.send_text(ONEBOT_CONFIG, "group:", "hello")
        mock_request.assert_not_called()


# ==================== QQ官方机器人测试 ====================

QQBOT_CONFIG = {
    "channels": {
        "qqbot": {
            "appId": "102000001",
            "clientSecret": "bot_secret",
            "accounts": {"test": {"appId": "102000002", "clientSecret": "s", "sandbox": True}},
        }
    }
}


class TestQQBotOutbound:
    """QQ官方机器人发送测试"""

    @pytest.fixture
    def plugin(self, registry):
        return registry.get_channel_plugin("qqbot")

    def test_group_reply(self, plugin, mock_request):
        """测试群消息被动回复"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"id": "REPLY1", "timestamp": "2024-01-01T00:00:00+08:00"}),
        ]
        result = plugin.send_text(QQBOT_CONFIG, "group:GOPENID:MSG1", "hello")

        method, url, kwargs = call(mock_request, 0)
        assert url == get_settings().QQBOT_TOKEN_URL
        assert kwargs["json"] == {"appId": "102000001", "clientSecret": "bot_secret"}

        method, url, kwargs = call(mock_request, 1)
        assert url == "https://api.sgroup.qq.com/v2/groups/GOPENID/messages"
        assert kwargs["headers"] == {"Authorization": "QQBot BOT", "X-Union-Appid": "102000001"}
        assert kwargs["json"] == {"msg_type": 0, "content": "hello", "msg_id": "MSG1", "msg_seq": 1}
        assert result.message_id == "qqbot_REPLY1"

    def test_msg_seq_increments(self, plugin, mock_request):
        """测试多次回复同一消息时msg_seq递增"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"id": "R1"}),
            json_response({"id": "R2"}),
        ]
        plugin.send_text(QQBOT_CONFIG, "c2c:UOPENID:MSG1", "a")
        plugin.send_text(QQBOT_CONFIG, "c2c:UOPENID:MSG1", "b")
        assert call(mock_request, 1)[2]["json"]["msg_seq"] == 1
        assert call(mock_request, 2)[2]["json"]["msg_seq"] == 2

    def test_media_upload(self, plugin, mock_request):
        """测试单聊图片先上传再发送"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"file_uuid": "U", "file_info": "FILEINFO", "ttl": 3600}),
            json_response({"id": "R1"}),
        ]
        plugin.send_media(QQBOT_CONFIG, "UOPENID", "看图", "https://example.com/a.png")

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/v2/users/UOPENID/files")
        assert kwargs["json"]["url"] == "https://example.com/a.png"

        method, url, kwargs = call(mock_request, 2)
        assert url.endswith("/v2/users/UOPENID/messages")
        assert kwargs["json"] == {"msg_type": 7, "media": {"file_info": "FILEINFO"}, "content": "看图"}

    def test_channel_message_sandbox(self, plugin, mock_request):
        """测试沙箱环境频道消息"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"id": "R1"}),
        ]
        plugin.send_text(QQBOT_CONFIG, "channel:12345", "hi", account_id="test")
        assert call(mock_request, 1)[1] == "https://sandbox.api.sgroup.qq.com/channels/12345/messages"

    def test_vendor_error(self, plugin, mock_request, token_cache):
        """测试token失效错误码"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"code": 11244, "message": "token not exist"}),
        ]
        with pytest.raises(VendorApiError):
            plugin.send_text(QQBOT_CONFIG, "group:G", "hi")
        assert token_cache.peek("qqbot:102000001") is None

    def test_direct_message_reply(self, plugin, mock_request):
        """测试频道私信被动回复"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"id": "DM1"}),
        ]
        result = plugin.send_text(QQBOT_CONFIG, "dm:DMGID:MID", "hi")

        method, url, kwargs = call(mock_request, 1)
        assert url == "https://api.sgroup.qq.com/dms/DMGID/messages"
        assert kwargs["json"] == {"content": "hi", "msg_id": "MID"}
        assert result.message_id == "qqbot_DM1"

    def test_direct_message_creates_session(self, plugin, mock_request):
        """测试按用户与源频道创建私信会话后发送"""
        mock_request.side_effect = [
            json_response({"access_token": "BOT", "expires_in": "7200"}),
            json_response({"guild_id": "DMGID", "channel_id": "DMCID", "create_time": "1700000000"}),
            json_response({"id": "DM2"}),
        ]
        plugin.send_text(QQBOT_CONFIG, "dm:UID@GID", "你好")

        method, url, kwargs = call(mock_request, 1)
        assert url.endswith("/users/@me/dms")
        assert kwargs["json"] == {"recipient_id": "UID", "source_guild_id": "GID"}
        assert call(mock_request, 2)[1].endswith("/dms/DMGID/messages")


# ==================== 媒体下载测试 ====================

class TestMediaDownload:
    """媒体下载"""

    @pytest.fixture
    def client(self, registry):
        return registry.get_channel_plugin("feishu").outbound.client

    def test_filename_and_content_type(self, client, mock_request):
        """测试文件名取URL路径,Content-Type去掉参数"""
        mock_request.side_effect = [media_response(b"abc", "image/jpeg; charset=binary")]
        media = client.download_media("https://cdn.example.com/path/photo.jpg?x=1")
        assert media.filename == "photo.jpg"
        assert media.content_type == "image/jpeg"
        assert media.content == b"abc"

    def test_network_error(self, client, mock_request):
        """测试网络异常"""
        mock_request.side_effect = requests.Timeout("timed out")
        with pytest.raises(TransportError):
            client.download_media("https://cdn.example.com/a.png")

    def test_empty_body(self, client, mock_request):
        """测试空内容"""
        mock_request.side_effect = [media_response(b"")]
        with pytest.raises(VendorApiError):
            client.download_media("https://cdn.example.com/a.png")


# ==================== 载荷类型推断测试 ====================

class TestPayloadInference:
    """消息类型推断"""

    def test_explicit_type(self, registry):
        """测试显式指定类型优先"""
        outbound = registry.get_channel_plugin("wecom").outbound
        assert outbound.infer_type(OutboundPayload(text="**x**", msg_type=MessageType.TEXT)) == MessageType.TEXT

    def test_inferred_type(self, registry):
        """测试按内容推断"""
        outbound = registry.get_channel_plugin("wecom").outbound
        assert outbound.infer_type(OutboundPayload(text="plain")) == MessageType.TEXT
        assert outbound.infer_type(OutboundPayload(text="# title")) == MessageType.MARKDOWN
        assert outbound.infer_type(OutboundPayload(text="x", media_url="https://a/b.png")) == MessageType.MARKDOWN


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
