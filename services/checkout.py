"""
결제(체크아웃) - 검증된 장바구니를 예약 기록으로 변환하고 정원을 차감
"""
import uuid
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from config import Config
from models import Booking, BookingStatus, ClassInstance
from services.availability import AvailabilityValidator
from services.document_store import BOOKINGS, CLASSES, WriteBatch
from utils.dates import normalize_time
from utils.errors import (
    ErrorKind, Issue, StoreError, ConcurrencyConflict, issues_message,
)

logger = logging.getLogger(__name__)


def generate_booking_id():
    """동시에 여러 기기에서 생성해도 충돌하지 않는 예약 ID"""
    return f"booking_{uuid.uuid4().hex}"


@dataclass
class CheckoutResult:
    success: bool
    booking_ids: List[str] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)
    message: str = ''

    @property
    def error(self):
        return self.issues[0].kind if self.issues else None

    @classmethod
    def failed(cls, issues):
        return cls(False, issues=list(issues), message=issues_message(issues))

    def to_dict(self):
        d = {"success": self.success, "message": self.message}
        if self.success:
            d["booking_ids"] = self.booking_ids
        else:
            d["error"] = self.message
            d["issues"] = [i.to_dict() for i in self.issues]
        return d


class _EntryUnavailable(Exception):
    def __init__(self, issue):
        super().__init__(issue.message)
        self.issue = issue


class BookingCommitter:
    """장바구니 전체를 한 번의 배치 쓰기로 예약 처리

    정원 차감은 직전에 읽은 문서 버전을 조건으로 한다. 다른 기기가 먼저 정원을
    바꾸면 배치 전체가 거부되고, 검증부터 다시 시도한다.
    """

    def __init__(self, store, validator=None, now_fn=datetime.now, max_attempts=None):
        self.store = store
        self.now_fn = now_fn
        self.validator = validator or AvailabilityValidator(store, now_fn=now_fn)
        self.max_attempts = max_attempts or Config.COMMIT_RETRY_ATTEMPTS

    async def commit(self, cart, user_id):
        entries = await cart.load()

        for attempt in range(1, self.max_attempts + 1):
            validation = await self.validator.validate_cart(entries, user_id)
            if not validation.ok:
                return CheckoutResult.failed(validation.issues)

            try:
                batch, booking_ids = await self._build_batch(entries, str(user_id))
                await self.store.commit(batch)
            except _EntryUnavailable as e:
                return CheckoutResult.failed([e.issue])
            except ConcurrencyConflict as e:
                logger.warning(f"예약 배치 충돌, 재시도 {attempt}/{self.max_attempts}: {e}")
                continue
            except StoreError as e:
                logger.error(f"예약 배치 쓰기 실패: {user_id} ({e})", exc_info=True)
                return CheckoutResult.failed([Issue.of(ErrorKind.CHECKOUT_FAILED)])

            await cart.clear_cart()
            count = len(booking_ids)
            logger.info(f"예약 완료: {user_id} ({count}건)")
            return CheckoutResult(
                True,
                booking_ids=booking_ids,
                message=f"{count}개 수업이 예약되었습니다.",
            )

        logger.error(f"예약 재시도 한도 초과: {user_id}")
        return CheckoutResult.failed([Issue.of(ErrorKind.CHECKOUT_FAILED)])

    async def _build_batch(self, entries, user_id):
        batch = WriteBatch()
        booking_ids = []
        now = self.now_fn()

        for entry in entries:
            # 장바구니 사본이 아닌 최신 수업 문서 기준으로 차감
            doc = await self.store.get(CLASSES, entry.id)
            if doc is None:
                raise _EntryUnavailable(Issue.of(ErrorKind.CLASS_GONE, entry.title, entry.id))
            cls = ClassInstance.from_dict(doc)
            if cls.available_slots <= 0:
                raise _EntryUnavailable(Issue.of(ErrorKind.CLASS_FULL, entry.title, entry.id))

            updated = dict(doc)
            updated['available_slots'] = cls.available_slots - 1
            batch.replace(CLASSES, updated, etag=doc.get('_etag'))

            booking = Booking(
                id=generate_booking_id(),
                class_id=cls.id,
                user_id=user_id,
                created_at=now,
                status=BookingStatus.CONFIRMED,
                class_name=entry.title,
                class_date=cls.date or entry.date,
                start_time=cls.start_time or normalize_time(entry.time),
                room=cls.room or entry.room,
                teacher=cls.teacher or entry.instructor,
                course_info=entry.course_info,
            )
            batch.create(BOOKINGS, booking.to_dict())
            booking_ids.append(booking.id)

        return batch, booking_ids
