# ./src/user_groups/main.py
import json
import asyncio
import functions_framework
from utils.graph_clients import create_http_client, get_access_token
from utils.graph_helpers import list_user_groups
from utils.settings import get_settings
from utils.logging_handler import get_logger

logger = get_logger(__name__)

JSON_HEADERS = {'Content-Type': 'application/json'}


async def collect_user_groups(object_id: str):
    """トークン取得からグループ列挙までを1リクエスト分実行する"""
    settings = get_settings()
    access_token = await get_access_token()

    async with create_http_client(access_token) as http_client:
        return await list_user_groups(
            http_client,
            object_id,
            tenant_type_attribute=settings.tenant_type_attribute,
            max_concurrency=settings.max_concurrency,
        )


@functions_framework.http
def get_user_groups(request):
    """
    クエリパラメータ objectId のユーザーが推移的に所属するグループを
    {"groups": [{"id", "name", "tenantType"}, ...]} 形式で返す。
    """
    if request.method != 'GET':
        return ('', 405, {'Allow': 'GET'})

    # 入力値の検証はしない (空文字のままディレクトリに問い合わせて失敗させる)
    object_id = request.args.get('objectId', '')
    logger.info(f"Listing groups for user: {object_id}")

    try:
        groups = asyncio.run(collect_user_groups(object_id))
    except Exception as e:
        logger.error(f"Failed to list groups for user {object_id}: {e}", exc_info=True)
        raise

    logger.info(
        f"Returning {len(groups)} groups for user {object_id}.",
        extra={"object_id": object_id, "group_count": len(groups)}
    )
    return (json.dumps({"groups": groups}), 200, JSON_HEADERS)
