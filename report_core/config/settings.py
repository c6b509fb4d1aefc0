"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def _load_env_file() -> None:
    """加载 .env 文件到环境变量。"""
    candidates = [
        Path.cwd() / ".env",
        Path(__file__).resolve().parents[2] / ".env",
        Path(__file__).resolve().parents[1] / ".env",
    ]
    for p in candidates:
        try:
            if p.exists():
                for line in p.read_text(encoding="utf-8").splitlines():
                    s = line.strip()
                    if not s or s.startswith("#") or "=" not in s:
                        continue
                    k, v = s.split("=", 1)
                    k = k.strip()
                    v = v.strip().strip('"').strip("'")
                    if k and (k not in os.environ):
                        os.environ[k] = v
                return  # 成功加载后退出
        except Exception as e:
            warnings.warn(f"Failed to load {p}: {e}")


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("REPORT_CONFIG_FILE")
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
        except Exception as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


try:
    from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore
    from pydantic import Field, field_validator

    class PydanticSettings(BaseSettings):
        """配置设置（使用 Pydantic）。"""

        # ---- Provider 相关配置 ----
        openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
        openai_base_url: str = Field(
            default="https://api.openai.com/v1",
            description="OpenAI 兼容接口的基础URL",
        )
        default_model: str = Field(
            default="report-chat",
            description="对话逻辑模型名，由 registry 映射为具体厂商模型",
        )
        embedding_model: str = Field(
            default="report-embed",
            description="向量化逻辑模型名",
        )
        correction_assistant_id: Optional[str] = Field(
            default=None,
            description="报告纠错使用的 Assistant ID",
        )
        http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

        # ---- 存储与日志 ----
        storage_root: str = Field(default=".storage", description="存储根目录")
        log_dir: str = Field(default="logs", description="日志目录")
        log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

        # ---- RAG ----
        retrieval_k: int = Field(default=8, ge=1, le=64, description="对话检索的参考片段数")
        crime_element_k: int = Field(default=5, ge=1, le=64, description="罪名要件生成时检索的片段数")

        # ---- 纠错任务轮询 ----
        poll_interval: float = Field(default=0.5, gt=0.0, description="任务状态轮询间隔（秒）")
        max_poll_attempts: Optional[int] = Field(
            default=600,
            ge=0,
            description="最大轮询次数，0 或空表示不限制",
        )
        poll_deadline_seconds: Optional[float] = Field(
            default=None,
            ge=0.0,
            description="轮询总时长上限（秒），空表示不限制",
        )

        model_config = SettingsConfigDict(
            env_file=".env",
            env_file_encoding="utf-8",
            case_sensitive=False,
            extra="ignore",
        )

        @staticmethod
        def _config_source() -> Dict[str, Any]:
            return _load_config_from_yaml()

        @field_validator("openai_api_key")
        @classmethod
        def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
            if v and len(v) < 10:
                raise ValueError("API key seems too short")
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

    settings = PydanticSettings()

except ImportError:
    # Fallback: 不使用 Pydantic
    warnings.warn("Pydantic not available, using fallback settings")

    class FallbackSettings:
        """配置设置（Fallback 实现）。"""

        def __init__(self):
            _load_env_file()
            cfg = _load_config_from_yaml()

            self.openai_api_key = os.getenv("OPENAI_API_KEY", cfg.get("openai_api_key"))
            self.openai_base_url = os.getenv(
                "OPENAI_BASE_URL",
                cfg.get("openai_base_url", "https://api.openai.com/v1"),
            )
            self.default_model = os.getenv("DEFAULT_MODEL", cfg.get("default_model", "report-chat"))
            self.embedding_model = os.getenv("EMBEDDING_MODEL", cfg.get("embedding_model", "report-embed"))
            self.correction_assistant_id = os.getenv(
                "CORRECTION_ASSISTANT_ID",
                cfg.get("correction_assistant_id"),
            )
            self.http_timeout = self._as_float(
                os.getenv("HTTP_TIMEOUT", str(cfg.get("http_timeout", "30.0"))),
                default=30.0,
                minimum=1.0,
            )

            self.storage_root = os.getenv("STORAGE_ROOT", cfg.get("storage_root", ".storage"))
            self.log_dir = os.getenv("LOG_DIR", cfg.get("log_dir", "logs"))
            self.log_redact_content = self._as_bool(
                os.getenv(
                    "LOG_REDACT_CONTENT",
                    str(cfg.get("log_redact_content", "false")),
                )
            )

            self.retrieval_k = self._as_int(
                os.getenv("RETRIEVAL_K", str(cfg.get("retrieval_k", 8))), default=8
            )
            self.crime_element_k = self._as_int(
                os.getenv("CRIME_ELEMENT_K", str(cfg.get("crime_element_k", 5))), default=5
            )

            self.poll_interval = self._as_float(
                os.getenv("POLL_INTERVAL", str(cfg.get("poll_interval", "0.5"))),
                default=0.5,
                minimum=0.01,
            )
            self.max_poll_attempts = self._as_int(
                os.getenv("MAX_POLL_ATTEMPTS", str(cfg.get("max_poll_attempts", 600))),
                default=600,
            )
            deadline = os.getenv("POLL_DEADLINE_SECONDS", cfg.get("poll_deadline_seconds"))
            self.poll_deadline_seconds = (
                self._as_float(str(deadline), default=0.0, minimum=0.0) if deadline else None
            )

        @staticmethod
        def _as_float(value: str, default: float, minimum: float) -> float:
            try:
                v = float(value)
                if v < minimum:
                    return default
                return v
            except ValueError:
                return default

        @staticmethod
        def _as_int(value: str, default: int) -> int:
            try:
                v = int(value)
                if v < 0:
                    return default
                return v
            except ValueError:
                return default

        @staticmethod
        def _as_bool(value: str | bool) -> bool:
            if isinstance(value, bool):
                return value
            return str(value).lower() in {"1", "true", "yes"}

        def validate(self) -> None:
            """验证配置有效性。"""
            if self.openai_api_key and len(self.openai_api_key) < 10:
                warnings.warn("API key seems too short")

    settings = FallbackSettings()
    settings.validate()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = type(settings)
