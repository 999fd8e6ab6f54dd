"""
Yoga Booking - 라우트 정의
"""
import re
import logging
from datetime import datetime
from flask import Blueprint, current_app, jsonify, request

from services.auth_state import AuthState
from services.availability import AvailabilityValidator
from services.booking_lifecycle import BookingLifecycleManager, group_bookings
from services.cart_store import CartStore
from services.catalog import CatalogService
from services.checkout import BookingCommitter
from services.document_store import open_store
from services.local_storage import JsonFileKeyValueStorage
from utils.dates import format_class_date
from utils.error_handlers import handle_errors
from utils.errors import ErrorKind, HTTP_STATUS, error_message, status_for

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')

USER_HEADER = 'X-User-Id'
ID_RE = re.compile(r'^[A-Za-z0-9_\-:.]{1,128}$')


# ===== 요청 컨텍스트 =====

def _auth_state():
    """게이트웨이가 전달한 사용자 ID (인증 절차 자체는 이 서비스 범위 밖)"""
    user_id = (request.headers.get(USER_HEADER) or '').strip()
    return AuthState(user_id if ID_RE.match(user_id) else None)


def _open_store():
    factory = current_app.config.get('STORE_FACTORY') or open_store
    return factory()


def _clock():
    return current_app.config.get('CLOCK') or datetime.now


def _cart_for(auth, catalog):
    storage = current_app.config.get('CART_STORAGE') or JsonFileKeyValueStorage()
    cart = CartStore(storage, catalog, now_fn=_clock())
    cart.bind(auth)
    return cart


def _unauthenticated():
    kind = ErrorKind.NOT_AUTHENTICATED
    return jsonify({"success": False, "error": error_message(kind)}), HTTP_STATUS[kind]


def _validate_id(value, label):
    if not value or not ID_RE.match(str(value)):
        raise ValueError(f"{label} 형식이 올바르지 않습니다.")
    return str(value)


def _class_dict(cls, course_info=None, cart=None):
    d = cls.to_dict()
    d["date_display"] = format_class_date(cls.date)
    if course_info is not None:
        d["course_info"] = course_info.to_dict()
    if cart is not None:
        d["in_cart"] = cart.is_in_cart(cls.id)
    return d


def _cart_payload(cart):
    return {
        "success": True,
        "items": [e.to_dict() for e in cart.entries],
        "count": cart.get_cart_count(),
        "total": cart.get_cart_total(),
    }


# ===== 과정/수업 =====

@api_bp.route('/courses', methods=['GET'])
@handle_errors
async def get_courses():
    """전체 과정 목록"""
    async with _open_store() as store:
        courses = await CatalogService(store).list_courses()
    return jsonify({"success": True, "courses": [c.to_dict() for c in courses]})


@api_bp.route('/courses/<course_id>/classes', methods=['GET'])
@handle_errors
async def get_course_classes(course_id):
    """과정별 수업 일정"""
    _validate_id(course_id, '과정 ID')
    async with _open_store() as store:
        catalog = CatalogService(store)
        course = await catalog.get_course(course_id)
        if course is None:
            return jsonify({"success": False, "error": "과정을 찾을 수 없습니다."}), 404
        classes = await catalog.classes_for_course(course_id)
    return jsonify({
        "success": True,
        "course": course.to_dict(),
        "classes": [_class_dict(c) for c in classes],
    })


@api_bp.route('/classes', methods=['GET'])
@handle_errors
async def get_classes():
    """수업 검색 (요일, 시간대: morning/afternoon/evening)"""
    day = request.args.get('day', '').strip() or None
    time_of_day = request.args.get('time', '').strip().lower() or None
    auth = _auth_state()
    async with _open_store() as store:
        catalog = CatalogService(store)
        results = await catalog.search_classes(day=day, time_of_day=time_of_day)
        cart = None
        if auth.is_signed_in:
            cart = _cart_for(auth, catalog)
            await cart.load()
    return jsonify({
        "success": True,
        "classes": [_class_dict(cls, info, cart) for cls, info in results],
    })


# ===== 장바구니 =====

@api_bp.route('/cart', methods=['GET'])
@handle_errors
async def get_cart():
    auth = _auth_state()
    if not auth.is_signed_in:
        return _unauthenticated()
    async with _open_store() as store:
        cart = _cart_for(auth, CatalogService(store))
        await cart.load()
    return jsonify(_cart_payload(cart))


@api_bp.route('/cart', methods=['POST'])
@handle_errors
async def add_to_cart():
    """장바구니에 수업 추가"""
    auth = _auth_state()
    if not auth.is_signed_in:
        return _unauthenticated()

    data = request.get_json(silent=True)
    if not data:
        return jsonify({"success": False, "error": "요청 데이터가 없습니다."}), 400
    class_id = _validate_id(data.get('class_id'), '수업 ID')

    async with _open_store() as store:
        catalog = CatalogService(store)
        cls = await catalog.get_class(class_id)
        if cls is None:
            return jsonify({"success": False, "error": "수업을 찾을 수 없습니다."}), 404

        cart = _cart_for(auth, catalog)
        await cart.load()
        if cart.is_in_cart(class_id):
            return jsonify({"success": False, "error": "이미 장바구니에 담긴 수업입니다."}), 409
        if not await cart.add_to_cart(cls):
            return jsonify({"success": False, "error": "장바구니에 추가하지 못했습니다. 다시 시도해주세요."}), 503

    payload = _cart_payload(cart)
    payload["message"] = "장바구니에 추가되었습니다."
    return jsonify(payload)


@api_bp.route('/cart/<class_id>', methods=['DELETE'])
@handle_errors
async def remove_from_cart(class_id):
    auth = _auth_state()
    if not auth.is_signed_in:
        return _unauthenticated()
    async with _open_store() as store:
        cart = _cart_for(auth, CatalogService(store))
        await cart.remove_from_cart(class_id)
    return jsonify(_cart_payload(cart))


@api_bp.route('/cart', methods=['DELETE'])
@handle_errors
async def clear_cart():
    auth = _auth_state()
    if not auth.is_signed_in:
        return _unauthenticated()
    async with _open_store() as store:
        cart = _cart_for(auth, CatalogService(store))
        await cart.clear_cart()
    return jsonify(_cart_payload(cart))


@api_bp.route('/cart/validate', methods=['POST'])
@handle_errors
async def validate_cart():
    """결제 전 장바구니 검증 (문제 목록 전체 반환)"""
    auth = _auth_state()
    async with _open_store() as store:
        cart = _cart_for(auth, CatalogService(store))
        entries = await cart.load() if auth.is_signed_in else []
        result = await AvailabilityValidator(store, now_fn=_clock()).validate_cart(
            entries, auth.current_user_id)
    return jsonify(result.to_dict()), status_for(result.issues)


# ===== 결제/예약 =====

@api_bp.route('/checkout', methods=['POST'])
@handle_errors
async def checkout():
    """장바구니 전체 예약"""
    auth = _auth_state()
    async with _open_store() as store:
        cart = _cart_for(auth, CatalogService(store))
        result = await BookingCommitter(store, now_fn=_clock()).commit(cart, auth.current_user_id)
    return jsonify(result.to_dict()), status_for(result.issues)


@api_bp.route('/bookings', methods=['GET'])
@handle_errors
async def get_bookings():
    """내 예약 내역 (view=grouped 이면 예정/지난/취소로 분류)"""
    auth = _auth_state()
    if not auth.is_signed_in:
        return _unauthenticated()
    clock = _clock()
    async with _open_store() as store:
        views = await BookingLifecycleManager(store, now_fn=clock).get_user_bookings(auth.current_user_id)

    if request.args.get('view') == 'grouped':
        groups = group_bookings(views, clock())
        return jsonify({
            "success": True,
            **{name: [v.to_dict() for v in items] for name, items in groups.items()},
        })
    return jsonify({"success": True, "bookings": [v.to_dict() for v in views]})


@api_bp.route('/bookings/<booking_id>/cancel', methods=['POST'])
@handle_errors
async def cancel_booking(booking_id):
    """예약 취소 (수업 24시간 전까지)"""
    _validate_id(booking_id, '예약 ID')
    auth = _auth_state()
    async with _open_store() as store:
        result = await BookingLifecycleManager(store, now_fn=_clock()).cancel_booking(
            booking_id, auth.current_user_id)
    return jsonify(result.to_dict()), result.status_code
