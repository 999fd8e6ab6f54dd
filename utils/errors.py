"""
예약 도메인 오류 분류와 저장소 예외
"""
from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    NOT_AUTHENTICATED = 'NotAuthenticated'
    EMPTY_CART = 'EmptyCart'
    CLASS_GONE = 'ClassGone'
    CLASS_NOT_FOUND = 'ClassNotFound'
    CLASS_FULL = 'ClassFull'
    CLASS_IN_PAST = 'ClassInPast'
    ALREADY_BOOKED = 'AlreadyBooked'
    BOOKING_NOT_FOUND = 'BookingNotFound'
    CHECKOUT_FAILED = 'CheckoutFailed'
    CANCELLATION_WINDOW_CLOSED = 'CancellationWindowClosed'


# 수업명이 들어가는 메시지는 {title} 자리표시자를 사용
ERROR_MESSAGES = {
    ErrorKind.NOT_AUTHENTICATED: "로그인이 필요합니다.",
    ErrorKind.EMPTY_CART: "장바구니가 비어 있습니다. 예약할 수업을 추가해주세요.",
    ErrorKind.CLASS_GONE: "'{title}' 수업이 더 이상 존재하지 않습니다.",
    ErrorKind.CLASS_NOT_FOUND: "예약된 수업 정보를 찾을 수 없습니다.",
    ErrorKind.CLASS_FULL: "'{title}' 수업은 정원이 마감되었습니다.",
    ErrorKind.CLASS_IN_PAST: "'{title}' 수업은 이미 지난 일정입니다.",
    ErrorKind.ALREADY_BOOKED: "'{title}' 수업은 이미 예약하셨습니다.",
    ErrorKind.BOOKING_NOT_FOUND: "예약을 찾을 수 없거나 이미 취소/완료된 예약입니다.",
    ErrorKind.CHECKOUT_FAILED: "요청을 처리하지 못했습니다. 잠시 후 다시 시도해주세요.",
    ErrorKind.CANCELLATION_WINDOW_CLOSED: "수업 시작 24시간 전까지만 예약을 취소할 수 있습니다.",
}

HTTP_STATUS = {
    ErrorKind.NOT_AUTHENTICATED: 401,
    ErrorKind.EMPTY_CART: 400,
    ErrorKind.CLASS_GONE: 409,
    ErrorKind.CLASS_NOT_FOUND: 404,
    ErrorKind.CLASS_FULL: 409,
    ErrorKind.CLASS_IN_PAST: 409,
    ErrorKind.ALREADY_BOOKED: 409,
    ErrorKind.BOOKING_NOT_FOUND: 404,
    ErrorKind.CHECKOUT_FAILED: 500,
    ErrorKind.CANCELLATION_WINDOW_CLOSED: 409,
}


def error_message(kind, title=''):
    return ERROR_MESSAGES[kind].format(title=title or 'Class')


@dataclass
class Issue:
    """검증/취소 실패 항목 하나"""
    kind: ErrorKind
    message: str
    class_id: str = ''

    @classmethod
    def of(cls, kind, title='', class_id=''):
        return cls(kind=kind, message=error_message(kind, title), class_id=str(class_id or ''))

    def to_dict(self):
        d = {"kind": self.kind.value, "message": self.message}
        if self.class_id:
            d["class_id"] = self.class_id
        return d


def issues_message(issues):
    """여러 실패 항목을 한 번에 보여줄 메시지로 합침"""
    if len(issues) == 1:
        return issues[0].message
    lines = "\n".join(f"- {issue.message}" for issue in issues)
    return f"다음 문제가 발견되었습니다:\n{lines}"


def status_for(issues):
    """가장 먼저 발견된 항목 기준 HTTP 상태 코드"""
    if not issues:
        return 200
    return HTTP_STATUS[issues[0].kind]


class StoreError(Exception):
    """원격/로컬 저장소 I/O 실패"""


class ConcurrencyConflict(StoreError):
    """조건부 쓰기 실패 (다른 클라이언트가 먼저 문서를 수정함)"""
