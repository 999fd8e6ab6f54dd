"""
기기 로컬 key-value 저장소 - 장바구니를 직렬화된 blob 하나로 보관
"""
import os
import json
import asyncio
import logging
import threading

from config import Config

logger = logging.getLogger(__name__)

_file_lock = threading.Lock()


class MemoryKeyValueStorage:
    """메모리 key-value 저장소 (테스트용)"""

    def __init__(self, data=None):
        self.data = dict(data or {})

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value


class JsonFileKeyValueStorage:
    """JSON 파일 하나에 key → 문자열 값 보관"""

    def __init__(self, filepath=None):
        self.filepath = filepath or Config.CART_STORAGE_FILE

    def _load_data(self):
        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return {}

    def _get(self, key):
        with _file_lock:
            return self._load_data().get(key)

    def _set(self, key, value):
        with _file_lock:
            os.makedirs(os.path.dirname(self.filepath) or '.', exist_ok=True)
            data = self._load_data()
            data[key] = value
            tmp_path = f"{self.filepath}.tmp"
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.filepath)

    async def get(self, key):
        return await asyncio.to_thread(self._get, key)

    async def set(self, key, value):
        await asyncio.to_thread(self._set, key, value)
