"""
예약 가능 여부 검증 - 결제 직전에 서버 상태를 다시 읽어 장바구니를 확인
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from models import Booking, BookingStatus, ClassInstance
from services.document_store import BOOKINGS, CLASSES
from utils.errors import ErrorKind, Issue, StoreError, issues_message

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    ok: bool
    issues: List[Issue] = field(default_factory=list)

    @property
    def message(self):
        return issues_message(self.issues) if self.issues else ''

    def to_dict(self):
        return {
            "success": self.ok,
            "issues": [i.to_dict() for i in self.issues],
            "error": self.message or None,
        }


def active_bookings(docs):
    """취소되지 않은 예약만"""
    bookings = [Booking.from_dict(d) for d in docs]
    return [b for b in bookings if b.status != BookingStatus.CANCELLED]


class AvailabilityValidator:
    """장바구니 스냅샷은 표시용일 뿐, 판단은 항상 최신 저장소 상태로 한다."""

    def __init__(self, store, now_fn=datetime.now):
        self.store = store
        self.now_fn = now_fn

    async def validate_cart(self, entries, user_id):
        entries = list(entries)
        if not user_id:
            return ValidationResult(False, [Issue.of(ErrorKind.NOT_AUTHENTICATED)])
        if not entries:
            return ValidationResult(False, [Issue.of(ErrorKind.EMPTY_CART)])

        issues = []
        try:
            booked_class_ids = {
                b.class_id for b in active_bookings(await self.store.query(BOOKINGS, 'user_id', str(user_id)))
            }
        except StoreError as e:
            logger.error(f"기존 예약 조회 실패: {user_id} ({e})")
            return ValidationResult(False, [Issue.of(ErrorKind.CHECKOUT_FAILED)])

        today = self.now_fn().date()
        for entry in entries:
            issues.extend(await self._check_entry(entry, booked_class_ids, today))

        if issues:
            logger.info(f"장바구니 검증 실패: {user_id} ({len(issues)}건)")
        return ValidationResult(not issues, issues)

    async def _check_entry(self, entry, booked_class_ids, today):
        title = entry.title
        try:
            doc = await self.store.get(CLASSES, entry.id)
        except StoreError as e:
            logger.error(f"수업 조회 실패: {entry.id} ({e})")
            return [Issue.of(ErrorKind.CHECKOUT_FAILED, title, entry.id)]

        if doc is None:
            return [Issue.of(ErrorKind.CLASS_GONE, title, entry.id)]

        cls = ClassInstance.from_dict(doc)
        issues = []
        if cls.available_slots <= 0:
            issues.append(Issue.of(ErrorKind.CLASS_FULL, title, entry.id))
        if cls.date is not None and cls.date < today:
            issues.append(Issue.of(ErrorKind.CLASS_IN_PAST, title, entry.id))
        if str(entry.id) in booked_class_ids:
            issues.append(Issue.of(ErrorKind.ALREADY_BOOKED, title, entry.id))
        return issues
