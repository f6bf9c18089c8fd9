"""
配置加载模块：支持 .env、环境变量、工作目录 certbind.json（或 CERTBIND_CONFIG 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.normalize_app_id: 将应用 ID 规范化为 {GUID} 形式
"""

from __future__ import annotations

import json
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, Literal, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource


class Config(BaseSettings):
    backend: Literal["windows", "local"] = "windows"
    listener_ip: str = "0.0.0.0"
    listener_port: int = 8443
    # 绑定归属方的固定标识，netsh 以此区分不同应用的绑定
    app_id: str = "{4dc3e181-e14b-4a21-b022-59fc669b0914}"
    service_name: str = "ManagementConsole"
    temp_dir: Path = Path(tempfile.gettempdir())
    export_dir: Path = Path.cwd()
    local_store_dir: Path = Path.home() / ".certbind"
    require_elevation: bool = True
    certreq_path: str = "certreq.exe"
    powershell_path: str = "powershell.exe"
    netsh_path: str = "netsh.exe"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CERTBIND_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("app_id", mode="before")
    @classmethod
    def normalize_app_id(cls, value: Any) -> str:
        """接受带或不带花括号的 GUID，统一输出为 netsh 需要的 {GUID}。"""
        text = str(value).strip().strip("{}")
        try:
            parsed = uuid.UUID(text)
        except ValueError:
            raise ValueError(f"app_id 不是合法的 GUID: {value}")
        return "{" + str(parsed) + "}"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: Any) -> str:
        return str(value).upper()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > certbind.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 certbind.json（或 CERTBIND_CONFIG 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CERTBIND_CONFIG")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "certbind.json"
                if not path.exists():
                    self._data = {}
                    return
                try:
                    with path.open("r", encoding="utf-8") as f:
                        data = json.load(f)
                    self._data = data if isinstance(data, dict) else {}
                except (OSError, ValueError):
                    self._data = {}

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按字段名返回字段值。"""
                self._load()
                data = self._data or {}
                if field_name in data:
                    return data[field_name], field_name, False
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
