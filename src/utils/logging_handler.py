import logging
import os
import sys
from pythonjsonlogger import jsonlogger

# ログレベルは環境変数で上書きできる (未設定なら INFO)
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()


def get_logger(name: str):
    """構造化JSONロガーを取得する"""
    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVEL)

    # ウォームスタートでモジュールが再評価されてもハンドラを重複させない
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(name)s %(levelname)s %(message)s',
            rename_fields={'levelname': 'severity'}
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False

    return logger
