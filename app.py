"""
Yoga Booking - 요가 수업 장바구니/예약 서비스
"""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

from flask import Flask, jsonify
from config import Config
from routes import api_bp


def configure_logging():
    """콘솔 + 파일 로그 설정"""
    os.makedirs(Config.LOG_DIR, exist_ok=True)
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    log_file = os.path.abspath(os.path.join(Config.LOG_DIR, 'app.log'))

    root = logging.getLogger()
    root.setLevel(Config.LOG_LEVEL)
    # 이미 같은 로그 파일로 설정되어 있으면 핸들러를 다시 붙이지 않음
    if any(isinstance(h, logging.FileHandler) and h.baseFilename == log_file for h in root.handlers):
        return

    stream_handler = logging.StreamHandler()
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    for handler in (stream_handler, file_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)


def create_app(overrides=None):
    """Flask 애플리케이션 팩토리"""
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # 필수 디렉토리 생성
    if not app.config.get('TESTING'):
        os.makedirs(Config.DATA_DIR, exist_ok=True)
        configure_logging()

    # Blueprint 등록
    app.register_blueprint(api_bp)

    @app.route('/health')
    def health_check():
        storage = "cosmos" if Config.use_cosmos_db() else "local-json"
        return jsonify({"status": "healthy", "storage": storage})

    # 보안 헤더
    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        response.headers['Cache-Control'] = 'no-store'
        return response

    return app


def main():
    """메인 실행 함수"""
    app = create_app()
    logger = logging.getLogger(__name__)
    storage = "Azure Cosmos DB" if Config.use_cosmos_db() else "로컬 JSON 파일"
    logger.info(f"Yoga Booking API http://localhost:{Config.PORT}/ (저장소: {storage})")

    if Config.DEBUG:
        app.run(debug=True, host=Config.HOST, port=Config.PORT)
    else:
        from waitress import serve
        logger.info(f"Waitress 서버 시작 (포트: {Config.PORT})")
        serve(app, host=Config.HOST, port=Config.PORT)


if __name__ == '__main__':
    main()
