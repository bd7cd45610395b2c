import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from .logging_handler import get_logger

logger = get_logger(__name__)

GROUP_ODATA_TYPE = '#microsoft.graph.group'
NEXT_LINK_KEY = '@odata.nextLink'
UNDEFINED_TENANT_TYPE = 'undefined'


async def iter_membership_pages(
    http_client: httpx.AsyncClient, object_id: str
) -> AsyncIterator[List[Dict[str, Any]]]:
    """
    ユーザーの推移的メンバーシップ (グループ/ディレクトリロール) をページ単位で返す。
    @odata.nextLink がある限り次ページを取得する。空ページで終了。
    """
    url: Optional[str] = f"/users/{quote(object_id, safe='@')}/transitiveMemberOf"
    page_number = 0

    while url:
        response = await http_client.get(url)
        # 404 (存在しないユーザー) や 400 (空のID) はここで例外になる
        response.raise_for_status()
        payload = response.json()

        entries = payload.get('value', [])
        page_number += 1
        logger.debug(f"Fetched membership page {page_number} with {len(entries)} entries.")
        if not entries:
            return
        yield entries

        url = payload.get(NEXT_LINK_KEY)


async def get_group_details(
    http_client: httpx.AsyncClient, group_id: str, tenant_type_attribute: str
) -> Dict[str, Any]:
    """グループの詳細 (表示名と拡張属性) を取得する"""
    response = await http_client.get(
        f"/groups/{quote(group_id, safe='')}",
        params={'$select': f"id,displayName,{tenant_type_attribute}"},
    )
    response.raise_for_status()
    return response.json()


def to_group(entry: Dict[str, Any], details: Dict[str, Any], tenant_type_attribute: str) -> Dict[str, str]:
    """メンバーシップとグループ詳細から出力レコードを組み立てる"""
    tenant_type = details.get(tenant_type_attribute)
    return {
        "id": entry['id'],
        "name": details.get('displayName'),
        "tenantType": UNDEFINED_TENANT_TYPE if tenant_type is None else str(tenant_type),
    }


def is_group(entry: Dict[str, Any]) -> bool:
    return entry.get('@odata.type') == GROUP_ODATA_TYPE


async def list_user_groups(
    http_client: httpx.AsyncClient,
    object_id: str,
    tenant_type_attribute: str,
    max_concurrency: int = 1,
) -> List[Dict[str, str]]:
    """
    ユーザーが推移的に所属するグループを列挙し、テナント種別を付与して返す。

    ページ内の詳細取得は max_concurrency を上限に並行実行し、
    全件そろってから次のページへ進む。出力順はページ順・ページ内順を保つ。
    1件でも失敗したら未送信の取得は送らず、実行中のものはキャンセルする。
    重複したグループIDは除外しない (警告ログのみ)。
    """
    semaphore = asyncio.Semaphore(max_concurrency)
    aborted = asyncio.Event()

    async def fetch(entry):
        async with semaphore:
            # セマフォ待ちの間に他の取得が失敗していたら送信しない
            if aborted.is_set():
                return None
            try:
                details = await get_group_details(http_client, entry['id'], tenant_type_attribute)
            except Exception:
                aborted.set()
                raise
        return to_group(entry, details, tenant_type_attribute)

    groups: List[Dict[str, str]] = []
    seen_ids = set()

    async for entries in iter_membership_pages(http_client, object_id):
        # ディレクトリロールなどグループ以外は黙ってスキップ
        tasks = [asyncio.ensure_future(fetch(entry)) for entry in entries if is_group(entry)]
        try:
            page_groups = await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            # キャンセル完了を待ち、残りの例外もここで回収する
            await asyncio.gather(*tasks, return_exceptions=True)

        for group in page_groups:
            if group['id'] in seen_ids:
                logger.warning(f"Group {group['id']} was returned more than once for user {object_id}.")
            seen_ids.add(group['id'])
            groups.append(group)

    return groups
