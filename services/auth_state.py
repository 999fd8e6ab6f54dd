"""
인증 상태 - 현재 사용자 ID 와 로그인/로그아웃 이벤트 구독
"""
import logging

logger = logging.getLogger(__name__)


class AuthState:
    """인증 제공자가 알려주는 현재 사용자 (자격 증명은 관리하지 않음)"""

    def __init__(self, user_id=None):
        self._user_id = str(user_id) if user_id else None
        self._listeners = []

    @property
    def current_user_id(self):
        return self._user_id

    @property
    def is_signed_in(self):
        return self._user_id is not None

    def subscribe(self, listener):
        """listener(user_id or None) 등록, 해제 함수 반환"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def sign_in(self, user_id):
        self._set_user(str(user_id))

    def sign_out(self):
        self._set_user(None)

    def _set_user(self, user_id):
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info(f"인증 상태 변경: {user_id or '로그아웃'}")
        for listener in list(self._listeners):
            listener(user_id)
