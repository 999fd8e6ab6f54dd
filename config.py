import os


class Config:
    """애플리케이션 설정"""

    # 보안
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'yoga-booking-secret-key'

    # 로컬 JSON 저장 (Cosmos DB fallback)
    DATA_DIR = os.environ.get('DATA_DIR') or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), 'data')
    STORE_FILE = os.path.join(DATA_DIR, 'studio.json')

    # 장바구니 로컬 저장소 (key-value blob)
    CART_STORAGE_FILE = os.path.join(DATA_DIR, 'carts.json')

    # Azure Cosmos DB
    COSMOS_DB_ENDPOINT = os.environ.get('COSMOS_DB_ENDPOINT')
    COSMOS_DB_KEY = os.environ.get('COSMOS_DB_KEY')
    COSMOS_DATABASE_NAME = 'YogaBookingDB'
    COSMOS_CONTAINER_NAME = 'StudioData'
    # 모든 문서를 하나의 논리 파티션에 두어 트랜잭션 배치가 원자적으로 적용되도록 함
    COSMOS_PARTITION_VALUE = os.environ.get('COSMOS_PARTITION_VALUE', 'studio')
    COSMOS_MAX_BATCH_OPERATIONS = 100

    # 예약 정책
    CANCELLATION_WINDOW_HOURS = int(os.environ.get('CANCELLATION_WINDOW_HOURS', 24))
    COMMIT_RETRY_ATTEMPTS = 3

    # 시간대 검색 구간 (시작 시각 포함, 종료 시각 미포함)
    TIME_OF_DAY_RANGES = {
        'morning': (5, 12),
        'afternoon': (12, 17),
        'evening': (17, 23),  # 22시 수업까지 포함
    }

    # 로그
    LOG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logs')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # 서버
    HOST = '0.0.0.0'
    PORT = int(os.environ.get('PORT', 5000))
    DEBUG = os.environ.get('FLASK_ENV') == 'development'

    @classmethod
    def use_cosmos_db(cls):
        """Cosmos DB 사용 여부 판단"""
        return bool(cls.COSMOS_DB_ENDPOINT and cls.COSMOS_DB_KEY)
