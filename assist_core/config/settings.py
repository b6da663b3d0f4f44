"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
各个后端的密钥只区分“是否存在”，缺失时由调用方走降级或报错分支。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("ASSIST_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 模型后端 ----
    default_model: str = Field(
        default="claude",
        description="调用方未指定时使用的聊天后端：grok 或 claude",
    )

    # Anthropic（多模态后端）
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API 密钥")
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com/v1",
        description="Anthropic API 基础URL",
    )
    # Groq（纯文本后端，OpenAI 兼容接口）
    groq_api_key: Optional[str] = Field(default=None, description="Groq API 密钥")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq API 基础URL",
    )
    # Gemini（语音转写 / 待办拆解）
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )
    # Firecrawl（网页抓取）
    firecrawl_api_key: Optional[str] = Field(default=None, description="Firecrawl API 密钥")
    firecrawl_base_url: str = Field(
        default="https://api.firecrawl.dev/v0",
        description="Firecrawl API 基础URL",
    )

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 上下文组装 ----
    max_context_messages: int = Field(default=20, ge=1, le=100, description="历史窗口消息数")
    max_scrape_urls: int = Field(default=3, ge=0, le=10, description="单轮最多抓取的链接数")
    max_detected_urls: int = Field(default=3, ge=0, le=10, description="从消息文本中自动识别的链接上限")
    scrape_content_limit: int = Field(default=8000, ge=1, description="抓取内容截断长度（字符）")
    include_failed_scrapes: bool = Field(
        default=True,
        description="success=False 的抓取结果是否仍放入提示词",
    )
    system_prompt: Optional[str] = Field(
        default=None,
        description="提示词文件缺失时使用的系统提示词",
    )

    # ---- 本地 Blob 存储 ----
    blob_public_base_url: str = Field(
        default="http://localhost:8000/blobs",
        description="本地 Blob 存储对外暴露的 URL 前缀",
    )
    blob_url_ttl_seconds: int = Field(default=3600, ge=1, description="Blob 访问链接有效期（秒）")
    blob_signing_key: str = Field(default="dev-signing-key", description="Blob 链接签名密钥")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("anthropic_api_key", "groq_api_key", "gemini_api_key", "firecrawl_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        # 空字符串视为未配置
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("default_model")
    @classmethod
    def validate_default_model(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in {"grok", "claude"}:
            raise ValueError("default_model must be 'grok' or 'claude'")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
