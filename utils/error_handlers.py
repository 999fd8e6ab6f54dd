import logging
from functools import wraps
from flask import jsonify

from utils.errors import StoreError

logger = logging.getLogger(__name__)


def handle_errors(f):
    """API 엔드포인트 에러 핸들링 데코레이터 (async 뷰용)"""
    @wraps(f)
    async def decorated(*args, **kwargs):
        try:
            return await f(*args, **kwargs)
        except ValueError as e:
            logger.warning(f"잘못된 값: {e}")
            return jsonify({"success": False, "error": str(e)}), 400
        except StoreError as e:
            logger.error(f"저장소 오류: {e}", exc_info=True)
            return jsonify({"success": False, "error": "저장소에 연결할 수 없습니다. 잠시 후 다시 시도해주세요."}), 503
        except Exception as e:
            logger.error(f"서버 오류: {e}", exc_info=True)
            return jsonify({"success": False, "error": "서버 내부 오류가 발생했습니다."}), 500
    return decorated
