"""
과정/수업 조회 서비스 (읽기 전용)
"""
import logging

from config import Config
from models import Course, ClassInstance, CourseInfo
from services.document_store import COURSES, CLASSES
from utils.dates import class_start, weekday_name

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, store):
        self.store = store

    async def get_course(self, course_id):
        if not course_id:
            return None
        doc = await self.store.get(COURSES, course_id)
        return Course.from_dict(doc) if doc else None

    async def list_courses(self):
        courses = [Course.from_dict(d) for d in await self.store.list(COURSES)]
        return sorted(courses, key=lambda c: c.name)

    async def get_class(self, class_id):
        doc = await self.store.get(CLASSES, class_id)
        return ClassInstance.from_dict(doc) if doc else None

    async def list_classes_with_course_info(self):
        """전체 수업 + 과정 정보 (과정이 없으면 빈 스냅샷)"""
        courses = {c.id: c for c in await self.list_courses()}
        result = []
        for doc in await self.store.list(CLASSES):
            cls = ClassInstance.from_dict(doc)
            result.append((cls, CourseInfo.from_course(courses.get(cls.course_id))))
        result.sort(key=lambda pair: _sort_key(pair[0]))
        return result

    async def classes_for_course(self, course_id):
        docs = await self.store.query(CLASSES, 'course_id', course_id)
        return sorted((ClassInstance.from_dict(d) for d in docs), key=_sort_key)

    async def search_classes(self, day=None, time_of_day=None):
        """요일/시간대 조건으로 수업 검색"""
        if time_of_day and time_of_day not in Config.TIME_OF_DAY_RANGES:
            raise ValueError(f"지원하지 않는 시간대입니다: {time_of_day}")
        classes = await self.list_classes_with_course_info()
        return [(cls, info) for cls, info in classes
                if matches_day(cls, day) and matches_time_of_day(cls, time_of_day)]


def matches_day(cls, day):
    if not day:
        return True
    if cls.date is None:
        return False
    return weekday_name(cls.date).lower() == day.strip().lower()


def matches_time_of_day(cls, time_of_day):
    # 시작 시간이 없는 수업은 시간대 필터에서 제외하지 않음
    if not time_of_day or not cls.start_time:
        return True
    start_hour, end_hour = Config.TIME_OF_DAY_RANGES[time_of_day]
    hour = int(cls.start_time.split(':')[0])
    return start_hour <= hour < end_hour


def _sort_key(cls):
    start = class_start(cls.date, cls.start_time)
    return (start is None, start or 0, cls.id)
