"""
날짜/시간 변환 유틸리티

저장소에는 여러 형식의 날짜가 섞여 있다.
  - ISO 문자열: "2026-11-05"
  - 레거시 문자열: "05/11/2026" (DD/MM/YYYY)
  - 레거시 객체: {"year": 2026, "monthValue": 11, "dayOfMonth": 5}
시간은 "HH:MM" 문자열 또는 {"hour": 9, "minute": 30} 객체로 저장된다.
"""
import re
from datetime import date, datetime, time, timedelta

TBA = 'TBA'

ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
LEGACY_DATE_RE = re.compile(r'^\d{1,2}/\d{1,2}/\d{4}$')
TIME_RE = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$')

WEEKDAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


def parse_class_date(value):
    """저장된 날짜 값을 date로 변환 (해석 불가 시 None)"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, dict):
        try:
            return date(int(value['year']), int(value['monthValue']), int(value['dayOfMonth']))
        except (KeyError, TypeError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        try:
            if ISO_DATE_RE.match(text):
                return date.fromisoformat(text)
            if LEGACY_DATE_RE.match(text):
                return datetime.strptime(text, '%d/%m/%Y').date()
        except ValueError:
            return None
    return None


def normalize_time(value):
    """시간 값을 "HH:MM" 문자열로 정규화 (해석 불가 시 None)"""
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime('%H:%M')
    if isinstance(value, dict):
        hour = value.get('hour')
        if not isinstance(hour, int) or not 0 <= hour <= 23:
            return None
        minute = value.get('minute') or 0
        if not isinstance(minute, int) or not 0 <= minute <= 59:
            return None
        return f"{hour:02d}:{minute:02d}"
    if isinstance(value, str):
        m = TIME_RE.match(value.strip())
        if m:
            return f"{int(m.group(1)):02d}:{m.group(2)}"
    return None


def resolve_time(*sources):
    """표시용 시작 시간 결정

    후보를 우선순위 순서대로 받아 처음으로 해석 가능한 값을 반환한다.
    빈 문자열, None, "TBA" 는 건너뛴다. 모든 후보가 실패하면 "TBA".
    """
    for source in sources:
        if isinstance(source, str) and source.strip().upper() == TBA:
            continue
        resolved = normalize_time(source)
        if resolved:
            return resolved
    return TBA


def class_start(class_date, start_time=None):
    """수업 시작 시각 (시작 시간이 없으면 자정)"""
    if class_date is None:
        return None
    normalized = normalize_time(start_time)
    if normalized:
        h, m = map(int, normalized.split(':'))
        return datetime.combine(class_date, time(h, m))
    return datetime.combine(class_date, time(0, 0))


def hours_until(start, now):
    return (start - now) / timedelta(hours=1)


def weekday_name(class_date):
    return WEEKDAYS[class_date.weekday()]


def format_class_date(class_date):
    """표시용 날짜: "Thursday, 05/11/2026" """
    if class_date is None:
        return 'Date not set'
    return f"{weekday_name(class_date)}, {class_date.strftime('%d/%m/%Y')}"
