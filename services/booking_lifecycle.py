"""
예약 이후 상태 관리 - 취소(24시간 규칙, 정원 복구)와 예약 내역 조회
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from config import Config
from models import Booking, BookingStatus, ClassInstance, Course, CourseInfo
from services.document_store import (
    BOOKINGS, CANCELLED_BOOKINGS, CLASSES, COURSES, WriteBatch,
)
from utils.dates import class_start, hours_until, resolve_time, format_class_date
from utils.errors import (
    ErrorKind, Issue, StoreError, ConcurrencyConflict, issues_message, status_for,
)

logger = logging.getLogger(__name__)


def can_cancel(booking, now, class_date=None, start_time=None,
               window_hours=None):
    """확정 상태이고 수업 시작까지 취소 가능 시간(기본 24시간)보다 많이 남았는지"""
    if booking.status != BookingStatus.CONFIRMED:
        return False
    window = Config.CANCELLATION_WINDOW_HOURS if window_hours is None else window_hours
    start = class_start(booking.class_date or class_date, booking.start_time or start_time)
    if start is None:
        return False
    return hours_until(start, now) > window


@dataclass
class CancellationResult:
    success: bool
    issues: List[Issue] = field(default_factory=list)

    @property
    def message(self):
        if self.success:
            return "예약이 취소되었습니다."
        return issues_message(self.issues)

    @property
    def status_code(self):
        return status_for(self.issues)

    def to_dict(self):
        d = {"success": self.success, "message": self.message}
        if not self.success:
            d["error"] = self.message
            d["issues"] = [i.to_dict() for i in self.issues]
        return d


@dataclass
class BookingView:
    """표시용 예약 (스냅샷 + 부족한 항목만 실시간 조회로 보완)"""
    booking: Booking
    class_name: str
    class_date: Optional[object]
    time: str
    room: str
    teacher: str
    course_info: CourseInfo
    can_cancel: bool

    @property
    def starts_at(self):
        return class_start(self.class_date, self.time)

    def to_dict(self):
        b = self.booking
        return {
            "id": b.id,
            "class_id": b.class_id,
            "user_id": b.user_id,
            "status": b.status.value,
            "created_at": b.created_at.isoformat() if b.created_at else None,
            "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
            "class_name": self.class_name,
            "class_date": self.class_date.isoformat() if self.class_date else None,
            "date_display": format_class_date(self.class_date),
            "time": self.time,
            "room": self.room,
            "teacher": self.teacher,
            "course_info": self.course_info.to_dict(),
            "can_cancel": self.can_cancel,
        }


class BookingLifecycleManager:
    def __init__(self, store, now_fn=datetime.now, max_attempts=None):
        self.store = store
        self.now_fn = now_fn
        self.max_attempts = max_attempts or Config.COMMIT_RETRY_ATTEMPTS

    async def cancel_booking(self, booking_id, user_id):
        """확정 예약 취소: 정원 +1, 예약을 취소 보관함으로 이동 (한 번의 배치)"""
        if not user_id:
            return CancellationResult(False, [Issue.of(ErrorKind.NOT_AUTHENTICATED)])

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await self._try_cancel(str(booking_id), str(user_id))
            except ConcurrencyConflict as e:
                logger.warning(f"예약 취소 충돌, 재시도 {attempt}/{self.max_attempts}: {booking_id} ({e})")
                continue
            except StoreError as e:
                logger.error(f"예약 취소 실패: {booking_id} ({e})", exc_info=True)
                return CancellationResult(False, [Issue.of(ErrorKind.CHECKOUT_FAILED)])
            return result

        logger.error(f"예약 취소 재시도 한도 초과: {booking_id}")
        return CancellationResult(False, [Issue.of(ErrorKind.CHECKOUT_FAILED)])

    async def _try_cancel(self, booking_id, user_id):
        doc = await self.store.get(BOOKINGS, booking_id)
        if doc is None:
            # 이미 취소되어 이동된 예약 포함
            return CancellationResult(False, [Issue.of(ErrorKind.BOOKING_NOT_FOUND)])

        booking = Booking.from_dict(doc)
        if booking.user_id != user_id:
            logger.warning(f"다른 사용자의 예약 취소 시도: {booking_id} ({user_id})")
            return CancellationResult(False, [Issue.of(ErrorKind.BOOKING_NOT_FOUND)])

        issues = []
        if booking.status != BookingStatus.CONFIRMED:
            issues.append(Issue.of(ErrorKind.BOOKING_NOT_FOUND, class_id=booking.class_id))

        class_doc = await self.store.get(CLASSES, booking.class_id)
        cls = ClassInstance.from_dict(class_doc) if class_doc else None
        if cls is None:
            issues.append(Issue.of(ErrorKind.CLASS_NOT_FOUND, class_id=booking.class_id))

        now = self.now_fn()
        if booking.status == BookingStatus.CONFIRMED and not can_cancel(
                booking, now,
                class_date=cls.date if cls else None,
                start_time=cls.start_time if cls else None):
            issues.append(Issue.of(ErrorKind.CANCELLATION_WINDOW_CLOSED, class_id=booking.class_id))

        if issues:
            return CancellationResult(False, issues)

        updated_class = dict(class_doc)
        updated_class['available_slots'] = cls.available_slots + 1

        cancelled = Booking.from_dict(doc)
        cancelled.status = BookingStatus.CANCELLED
        cancelled.cancelled_at = now

        batch = WriteBatch()
        batch.replace(CLASSES, updated_class, etag=class_doc.get('_etag'))
        batch.delete(BOOKINGS, booking_id, etag=doc.get('_etag'))
        batch.create(CANCELLED_BOOKINGS, cancelled.to_dict())
        await self.store.commit(batch)

        logger.info(f"예약 취소: {booking_id} (수업 {booking.class_id} 잔여 {updated_class['available_slots']})")
        return CancellationResult(True)

    async def get_user_bookings(self, user_id):
        """진행/취소 예약을 합쳐 수업 시작 순으로 반환"""
        if not user_id:
            return []
        active = await self.store.query(BOOKINGS, 'user_id', str(user_id))
        cancelled = await self.store.query(CANCELLED_BOOKINGS, 'user_id', str(user_id))

        now = self.now_fn()
        lookups = _LiveLookup(self.store)
        views = []
        for doc in active + cancelled:
            views.append(await self._to_view(Booking.from_dict(doc), lookups, now))

        logger.info(f"예약 내역 조회: {user_id} (진행 {len(active)}건, 취소 {len(cancelled)}건)")
        return sorted(views, key=_chronological_key)

    async def _to_view(self, booking, lookups, now):
        cls = None
        if booking.class_date is None or booking.course_info is None \
                or not booking.room or not booking.teacher:
            cls = await lookups.get_class(booking.class_id)

        course_info = booking.course_info
        if course_info is None:
            course = await lookups.get_course(cls.course_id) if cls else None
            course_info = CourseInfo.from_course(course)

        class_date = booking.class_date or (cls.date if cls else None)
        time = resolve_time(booking.start_time, cls.start_time if cls else None, course_info.time)
        return BookingView(
            booking=booking,
            class_name=booking.class_name or course_info.name or 'Class',
            class_date=class_date,
            time=time,
            room=booking.room or (cls.room if cls else ''),
            teacher=booking.teacher or (cls.teacher if cls else ''),
            course_info=course_info,
            can_cancel=can_cancel(booking, now, class_date=class_date,
                                  start_time=cls.start_time if cls else None),
        )


def group_bookings(views, now):
    """예정 / 지난 / 취소 예약으로 분류"""
    today = now.date()
    upcoming, past, cancelled = [], [], []
    for view in views:
        if view.booking.is_cancelled:
            cancelled.append(view)
        elif view.class_date is None:
            logger.warning(f"날짜 정보가 없는 예약: {view.booking.id}")
        elif view.class_date >= today:
            upcoming.append(view)
        else:
            past.append(view)

    upcoming.sort(key=_chronological_key)
    past.sort(key=_chronological_key, reverse=True)
    cancelled.sort(key=lambda v: v.booking.cancelled_at or datetime.min, reverse=True)
    return {"upcoming": upcoming, "past": past, "cancelled": cancelled}


def _chronological_key(view):
    start = view.starts_at
    return (start is None, start or datetime.min, view.booking.id)


class _LiveLookup:
    """스냅샷이 불완전한 예약용 수업/과정 조회 (요청 내 캐시)"""

    def __init__(self, store):
        self.store = store
        self._classes = {}
        self._courses = {}

    async def get_class(self, class_id):
        if class_id not in self._classes:
            self._classes[class_id] = await self._read(CLASSES, class_id, ClassInstance)
        return self._classes[class_id]

    async def get_course(self, course_id):
        if not course_id:
            return None
        if course_id not in self._courses:
            self._courses[course_id] = await self._read(COURSES, course_id, Course)
        return self._courses[course_id]

    async def _read(self, collection, key, model):
        try:
            doc = await self.store.get(collection, key)
        except StoreError as e:
            logger.error(f"예약 정보 보완 조회 실패: {collection}/{key} ({e})")
            return None
        return model.from_dict(doc) if doc else None
