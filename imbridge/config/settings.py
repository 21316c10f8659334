"""
Application settings and configuration management.
"""
from pydantic_settings import BaseSettings
from pydantic import model_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # 服务配置
    HOST: str = "0.0.0.0"
    PORT: int = 8090
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # 渠道账号配置文件(JSON, 结构: {"channels": {...}})
    CHANNELS_CONFIG_PATH: str = "./channels.json"

    # 平台API调用
    HTTP_TIMEOUT: float = 10.0  # 秒
    TOKEN_REFRESH_MARGIN: int = 300  # 提前5分钟刷新access_token

    # 企业微信
    WECOM_API_BASE: str = "https://qyapi.weixin.qq.com/cgi-bin"

    # 钉钉(旧版oapi + 新版api)
    DINGTALK_OAPI_BASE: str = "https://oapi.dingtalk.com"
    DINGTALK_API_BASE: str = "https://api.dingtalk.com"

    # 飞书
    FEISHU_API_BASE: str = "https://open.feishu.cn/open-apis"
    LARK_API_BASE: str = "https://open.larksuite.com/open-apis"

    # QQ官方机器人
    QQBOT_API_BASE: str = "https://api.sgroup.qq.com"
    QQBOT_SANDBOX_API_BASE: str = "https://sandbox.api.sgroup.qq.com"
    QQBOT_TOKEN_URL: str = "https://bots.qq.com/app/getAppAccessToken"

    # 默认回调路径前缀
    WEBHOOK_PATH_PREFIX: str = ""

    @model_validator(mode='after')
    def validate_limits(self):
        """超时/刷新窗口必须为正数"""
        if self.HTTP_TIMEOUT <= 0:
            raise ValueError("HTTP_TIMEOUT must be positive")
        if self.TOKEN_REFRESH_MARGIN < 0:
            raise ValueError("TOKEN_REFRESH_MARGIN must not be negative")
        self.WEBHOOK_PATH_PREFIX = self.WEBHOOK_PATH_PREFIX.rstrip("/")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# 全局配置实例
settings = Settings()


def get_settings() -> Settings:
    """获取配置实例"""
    return settings
