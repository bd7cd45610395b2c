# ./src/utils/graph_clients.py
# Microsoft Graph 呼び出しで共通して使用する資格情報とクライアントを定義するモジュール

import asyncio
import functools

import httpx
from azure.identity import ClientSecretCredential

from .settings import get_settings

GRAPH_SCOPE = 'https://graph.microsoft.com/.default'

# --------------------------------------------------
# クラスのエイリアス (テストで差し替えるため 'Class' 接尾辞)
# --------------------------------------------------
CredentialClass = ClientSecretCredential
AsyncHttpClientClass = httpx.AsyncClient


# --------------------------------------------------
# プロセス内シングルトン
# 初回呼び出し時に一度だけ生成し、以降のリクエストで再利用する
# --------------------------------------------------
@functools.lru_cache(maxsize=None)
def get_credential():
    """アプリ専用 (client credentials) の資格情報を返す"""
    settings = get_settings()
    # 値が欠けている場合は azure-identity 側で ValueError になる
    return CredentialClass(
        tenant_id=settings.tenant_id,
        client_id=settings.app_id,
        client_secret=settings.client_secret,
    )


async def get_access_token() -> str:
    """Graph 用のアクセストークンを取得する (同期APIなのでスレッドで実行)"""
    credential = get_credential()
    token = await asyncio.to_thread(credential.get_token, GRAPH_SCOPE)
    return token.token


def create_http_client(access_token: str, transport=None) -> httpx.AsyncClient:
    """リクエスト単位の Graph 用 HTTP クライアントを作成する"""
    settings = get_settings()
    return AsyncHttpClientClass(
        base_url=settings.graph_base_url,
        headers={
            'Authorization': f'Bearer {access_token}',
            'Accept': 'application/json',
        },
        timeout=settings.timeout_seconds,
        transport=transport,
    )


__all__ = [
    "GRAPH_SCOPE",
    "CredentialClass",
    "AsyncHttpClientClass",
    "get_credential",
    "get_access_token",
    "create_http_client",
]
