"""
Yoga Booking - 데이터 모델
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from utils.dates import parse_class_date, normalize_time, TBA


class BookingStatus(str, Enum):
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'
    WAITLISTED = 'waitlisted'
    UNKNOWN = 'unknown'

    @classmethod
    def parse(cls, value):
        # 상태가 없는 레거시 기록만 확정으로 간주
        if not value:
            return cls.CONFIRMED
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


def _to_float(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value):
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _parse_datetime(value):
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None


def _iso(value):
    return value.isoformat() if value else None


@dataclass
class Course:
    """과정 (수업의 템플릿)"""
    id: str
    name: str = ""
    type: str = ""             # "Flow Yoga", "Aerial Yoga" ...
    price: float = 0.0
    duration: str = ""         # "60 minutes"
    description: str = ""
    time: str = ""             # 기본 수업 시간 "10:00"

    @classmethod
    def from_dict(cls, d):
        return cls(
            id=str(d.get('id', '')),
            name=d.get('name') or '',
            type=d.get('type') or '',
            price=_to_float(d.get('price')),
            duration=str(d.get('duration') or ''),
            description=d.get('description') or '',
            time=d.get('time') or '',
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "price": self.price,
            "duration": self.duration,
            "description": self.description,
            "time": self.time,
        }


@dataclass
class CourseInfo:
    """예약/장바구니 시점의 과정 정보 스냅샷"""
    name: str = ""
    price: float = 0.0
    type: str = ""
    description: str = ""
    duration: str = ""
    time: str = ""

    @classmethod
    def from_course(cls, course):
        if course is None:
            return cls()
        return cls(
            name=course.name,
            price=course.price,
            type=course.type,
            description=course.description,
            duration=course.duration,
            time=course.time,
        )

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        return cls(
            name=d.get('name') or '',
            price=_to_float(d.get('price')),
            type=d.get('type') or '',
            description=d.get('description') or '',
            duration=str(d.get('duration') or ''),
            time=d.get('time') or '',
        )

    def to_dict(self):
        return {
            "name": self.name,
            "price": self.price,
            "type": self.type,
            "description": self.description,
            "duration": self.duration,
            "time": self.time,
        }


@dataclass
class ClassInstance:
    """과정의 특정 날짜 수업"""
    id: str
    course_id: str
    date: Optional[date] = None
    start_time: Optional[str] = None   # "HH:MM"
    teacher: str = ""
    room: str = ""
    available_slots: int = 0
    capacity: Optional[int] = None
    additional_comments: str = ""
    etag: Optional[str] = None         # 저장소 문서 버전 (조건부 쓰기용)

    @classmethod
    def from_dict(cls, d):
        capacity = d.get('capacity')
        return cls(
            id=str(d.get('id', '')),
            course_id=str(d.get('course_id') or ''),
            date=parse_class_date(d.get('date')),
            start_time=normalize_time(d.get('start_time')),
            teacher=d.get('teacher') or '',
            room=d.get('room') or '',
            available_slots=_to_int(d.get('available_slots')),
            capacity=_to_int(capacity) if capacity is not None else None,
            additional_comments=d.get('additional_comments') or '',
            etag=d.get('_etag'),
        )

    def to_dict(self):
        d = {
            "id": self.id,
            "course_id": self.course_id,
            "date": _iso(self.date),
            "start_time": self.start_time,
            "teacher": self.teacher,
            "room": self.room,
            "available_slots": self.available_slots,
            "additional_comments": self.additional_comments,
        }
        if self.capacity is not None:
            d["capacity"] = self.capacity
        return d

    def is_available(self):
        return self.available_slots > 0


@dataclass
class CartEntry:
    """장바구니 항목 (아직 예약되지 않은 수업 선택)"""
    id: str                    # 수업 ID
    course_id: str
    title: str = "Class"
    date: Optional[date] = None
    time: str = TBA
    instructor: str = TBA
    room: str = TBA
    available_slots: int = 0
    course_info: CourseInfo = field(default_factory=CourseInfo)
    added_at: str = ""

    @classmethod
    def from_dict(cls, d):
        return cls(
            id=str(d.get('id', '')),
            course_id=str(d.get('course_id') or ''),
            title=d.get('title') or 'Class',
            date=parse_class_date(d.get('date')),
            time=d.get('time') or TBA,
            instructor=d.get('instructor') or TBA,
            room=d.get('room') or TBA,
            available_slots=_to_int(d.get('available_slots')),
            course_info=CourseInfo.from_dict(d.get('course_info')),
            added_at=d.get('added_at') or '',
        )

    def to_dict(self):
        return {
            "id": self.id,
            "course_id": self.course_id,
            "title": self.title,
            "date": _iso(self.date),
            "time": self.time,
            "instructor": self.instructor,
            "room": self.room,
            "available_slots": self.available_slots,
            "course_info": self.course_info.to_dict(),
            "added_at": self.added_at,
        }


@dataclass
class Booking:
    """확정된 예약 기록 (물리 삭제 없음)"""
    id: str
    class_id: str
    user_id: str
    created_at: Optional[datetime] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    class_name: str = ""
    class_date: Optional[date] = None
    start_time: Optional[str] = None
    room: str = ""
    teacher: str = ""
    course_info: Optional[CourseInfo] = None   # None 이면 스냅샷 없음 (레거시 기록)
    cancelled_at: Optional[datetime] = None
    etag: Optional[str] = None

    @classmethod
    def from_dict(cls, d):
        course_info = d.get('course_info')
        return cls(
            id=str(d.get('id', '')),
            class_id=str(d.get('class_id') or ''),
            user_id=str(d.get('user_id') or ''),
            created_at=_parse_datetime(d.get('created_at')),
            status=BookingStatus.parse(d.get('status')),
            class_name=d.get('class_name') or '',
            class_date=parse_class_date(d.get('class_date')),
            start_time=normalize_time(d.get('start_time')),
            room=d.get('room') or '',
            teacher=d.get('teacher') or '',
            course_info=CourseInfo.from_dict(course_info) if course_info else None,
            cancelled_at=_parse_datetime(d.get('cancelled_at')),
            etag=d.get('_etag'),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "class_id": self.class_id,
            "user_id": self.user_id,
            "created_at": _iso(self.created_at),
            "status": self.status.value,
            "class_name": self.class_name,
            "class_date": _iso(self.class_date),
            "start_time": self.start_time,
            "room": self.room,
            "teacher": self.teacher,
            "course_info": self.course_info.to_dict() if self.course_info else None,
            "cancelled_at": _iso(self.cancelled_at),
        }

    @property
    def is_cancelled(self):
        return self.status == BookingStatus.CANCELLED
