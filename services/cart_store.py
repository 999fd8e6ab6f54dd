"""
장바구니 저장소 - 예약 전 수업 선택을 보관하고 로컬 저장소에 유지
"""
import json
import logging
from datetime import datetime

from models import CartEntry, CourseInfo
from utils.dates import resolve_time, TBA
from utils.errors import StoreError

logger = logging.getLogger(__name__)

GUEST_OWNER = 'guest'


def _same_id(a, b):
    return str(a).strip() == str(b).strip()


class CartStore:
    """사용자별 장바구니

    첫 변경 전에 반드시 저장된 장바구니를 불러온다. 빈 초기 상태가 저장된 내용을
    덮어쓰지 않도록 하기 위함이다. 변경할 때마다 목록 전체를 다시 저장한다.
    """

    def __init__(self, storage, catalog, owner=None, now_fn=datetime.now):
        self.storage = storage
        self.catalog = catalog
        self.owner = str(owner) if owner else None
        self.now_fn = now_fn
        self._entries = []
        self._loaded = False

    @property
    def storage_key(self):
        return f"cart:{self.owner or GUEST_OWNER}"

    @property
    def entries(self):
        return list(self._entries)

    @property
    def loaded(self):
        return self._loaded

    def bind(self, auth_state):
        """로그인 사용자 변경 시 다른 장바구니로 전환"""
        self.owner = auth_state.current_user_id
        return auth_state.subscribe(self._on_user_changed)

    def _on_user_changed(self, user_id):
        self.owner = user_id
        self._entries = []
        self._loaded = False

    async def load(self):
        """저장된 장바구니를 한 번만 불러옴 (실패 시 빈 장바구니)"""
        if self._loaded:
            return self.entries
        entries = []
        try:
            blob = await self.storage.get(self.storage_key)
            if blob:
                entries = [CartEntry.from_dict(d) for d in json.loads(blob)]
        except Exception as e:
            logger.error(f"장바구니 불러오기 실패 ({self.storage_key}): {e}")
            entries = []

        # 수업당 한 항목만 유지 (먼저 담긴 항목 우선)
        unique = []
        for entry in entries:
            if not any(_same_id(e.id, entry.id) for e in unique):
                unique.append(entry)
        self._entries = unique
        self._loaded = True
        if len(unique) != len(entries):
            logger.warning(f"장바구니 중복 항목 정리 ({self.storage_key}): {len(entries) - len(unique)}건")
            await self._save()
        return self.entries

    async def _save(self):
        try:
            blob = json.dumps([e.to_dict() for e in self._entries], ensure_ascii=False)
            await self.storage.set(self.storage_key, blob)
        except Exception as e:
            logger.error(f"장바구니 저장 실패 ({self.storage_key}): {e}")

    def is_in_cart(self, class_id):
        return any(_same_id(e.id, class_id) for e in self._entries)

    async def add_to_cart(self, selection):
        """수업을 장바구니에 추가 (중복이거나 과정 조회 실패 시 False)"""
        await self.load()
        if self.is_in_cart(selection.id):
            return False

        try:
            course = await self.catalog.get_course(selection.course_id)
        except StoreError as e:
            logger.error(f"장바구니 항목 과정 조회 실패: {selection.course_id} ({e})")
            return False

        course_info = CourseInfo.from_course(course)
        entry = CartEntry(
            id=str(selection.id),
            course_id=str(selection.course_id),
            title=course_info.name or 'Class',
            date=selection.date,
            time=resolve_time(selection.start_time, course_info.time),
            instructor=selection.teacher or TBA,
            room=selection.room or TBA,
            available_slots=selection.available_slots,
            course_info=course_info,
            added_at=self.now_fn().isoformat(),
        )

        # 과정 조회 중 같은 수업이 추가되었을 수 있음
        if self.is_in_cart(entry.id):
            return False
        self._entries.append(entry)
        logger.info(f"장바구니 추가: {entry.title} ({entry.id})")
        await self._save()
        return True

    async def remove_from_cart(self, class_id):
        await self.load()
        remaining = [e for e in self._entries if not _same_id(e.id, class_id)]
        if len(remaining) == len(self._entries):
            return
        self._entries = remaining
        logger.info(f"장바구니 삭제: {class_id}")
        await self._save()

    async def clear_cart(self):
        await self.load()
        self._entries = []
        await self._save()

    def get_cart_total(self):
        return sum(e.course_info.price or 0 for e in self._entries)

    def get_cart_count(self):
        return len(self._entries)
