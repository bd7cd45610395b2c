# ./src/utils/settings.py
# アプリ設定をローカル開発用ファイルと環境変数から組み立てるモジュール

import os
import json
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .logging_handler import get_logger

logger = get_logger(__name__)

# --- 既定値 ---
DEFAULT_SETTINGS_FILE = 'local.settings.json'
DEFAULT_TENANT_TYPE_ATTRIBUTE = 'extension_275feff56d9b447c9ed3f7d79ec6236f_tenantType'
DEFAULT_GRAPH_BASE_URL = 'https://graph.microsoft.com/v1.0'
DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_TIMEOUT_SECONDS = 30.0


def read_settings_file(path: str) -> Dict[str, Any]:
    """
    local.settings.json の "Values" を読み込む。
    ファイルが無い場合は空の dict を返す (本番環境ではファイルを置かない)。
    """
    if not os.path.exists(path):
        return {}

    try:
        with open(path, encoding='utf-8') as f:
            content = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable settings file {path}: {e}")
        return {}

    values = content.get('Values', {}) if isinstance(content, dict) else {}
    if not isinstance(values, dict):
        logger.warning(f"Ignoring settings file {path}: 'Values' is not an object.")
        return {}
    return values


class LocalSettingsFileSource(PydanticBaseSettingsSource):
    """local.settings.json (パスは LOCAL_SETTINGS_PATH で変更可) を設定ソースとして扱う"""

    def __init__(self, settings_cls: Type[BaseSettings]):
        super().__init__(settings_cls)
        path = os.getenv('LOCAL_SETTINGS_PATH', DEFAULT_SETTINGS_FILE)
        self.values = read_settings_file(path)

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        key = field.alias or field_name
        return self.values.get(key), key, False

    def __call__(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                data[key] = value
        return data


class Settings(BaseSettings):
    # 必須値の存在チェックはしない (資格情報の生成時に失敗させる)
    app_id: Optional[str] = Field(None, alias='AppId')
    tenant_id: Optional[str] = Field(None, alias='TenantId')
    client_secret: Optional[str] = Field(None, alias='ClientSecret')

    tenant_type_attribute: str = Field(DEFAULT_TENANT_TYPE_ATTRIBUTE, alias='TenantTypeAttribute')
    graph_base_url: str = Field(DEFAULT_GRAPH_BASE_URL, alias='GraphBaseUrl')
    max_concurrency: int = Field(DEFAULT_MAX_CONCURRENCY, alias='GraphMaxConcurrency', ge=1)
    timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, alias='GraphTimeoutSeconds', gt=0)

    model_config = SettingsConfigDict(
        case_sensitive=True,
        populate_by_name=True,
        extra='ignore',
        frozen=True,
    )

    @field_validator('graph_base_url')
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip('/')

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # 先頭ほど優先: 環境変数がファイルの値を上書きする
        return (init_settings, env_settings, LocalSettingsFileSource(settings_cls))


def load_settings() -> Settings:
    """ファイルの値を環境変数で上書きして Settings を作る"""
    return Settings()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """プロセス内で一度だけ設定を解決する"""
    settings = load_settings()
    logger.info(
        "Settings resolved.",
        extra={
            "graph_base_url": settings.graph_base_url,
            "max_concurrency": settings.max_concurrency,
            "tenant_type_attribute": settings.tenant_type_attribute,
        }
    )
    return settings
