"""
데이터 저장 서비스 - Azure Cosmos DB 또는 로컬 JSON fallback

컬렉션 단위의 문서 저장소. 모든 구현은 같은 비동기 인터페이스를 가진다.
  - get(collection, key)            단건 조회
  - query(collection, field, value) 필드 동등 조건 조회
  - list(collection)                전체 조회
  - put / delete                    단건 쓰기
  - commit(batch)                   다건 쓰기 (전부 적용 또는 전부 미적용)

조회 결과 문서에는 버전 값 '_etag' 가 포함된다. 배치 연산에 etag 를 지정하면
해당 문서가 그 사이 수정되었을 때 배치 전체가 ConcurrencyConflict 로 실패한다.
"""
import os
import copy
import json
import uuid
import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from config import Config
from utils.errors import StoreError, ConcurrencyConflict

logger = logging.getLogger(__name__)

COURSES = 'courses'
CLASSES = 'classes'
BOOKINGS = 'bookings'
CANCELLED_BOOKINGS = 'cancelled_bookings'
COLLECTIONS = (COURSES, CLASSES, BOOKINGS, CANCELLED_BOOKINGS)

_file_lock = threading.Lock()


def _new_etag():
    return uuid.uuid4().hex


@dataclass
class WriteOp:
    action: str                 # create | upsert | replace | delete
    collection: str
    key: str
    doc: Optional[dict] = None
    etag: Optional[str] = None  # 지정 시 조건부 쓰기


@dataclass
class WriteBatch:
    """한 번에 적용할 쓰기 묶음"""
    ops: List[WriteOp] = field(default_factory=list)

    def create(self, collection, doc):
        self.ops.append(WriteOp('create', collection, str(doc['id']), _strip_meta(doc)))
        return self

    def upsert(self, collection, doc):
        self.ops.append(WriteOp('upsert', collection, str(doc['id']), _strip_meta(doc)))
        return self

    def replace(self, collection, doc, etag=None):
        self.ops.append(WriteOp('replace', collection, str(doc['id']), _strip_meta(doc), etag))
        return self

    def delete(self, collection, key, etag=None):
        self.ops.append(WriteOp('delete', collection, str(key), None, etag))
        return self

    def __len__(self):
        return len(self.ops)


def _strip_meta(doc):
    return {k: v for k, v in doc.items() if k != '_etag'}


class MemoryStore:
    """메모리 기반 저장소 (테스트/로컬 실행용)"""

    def __init__(self, data=None):
        self._state = {name: {} for name in COLLECTIONS}
        self._lock = threading.Lock()
        for collection, docs in (data or {}).items():
            for doc in docs:
                stored = _strip_meta(doc)
                stored['_etag'] = _new_etag()
                self._state.setdefault(collection, {})[str(doc['id'])] = stored

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def _run(self, fn, *args, write=False):
        with self._lock:
            return fn(self._state, *args)

    async def get(self, collection, key):
        return await self._run(_get, collection, str(key))

    async def query(self, collection, field_name, value):
        return await self._run(_query, collection, field_name, value)

    async def list(self, collection):
        return await self._run(_list, collection)

    async def put(self, collection, doc):
        await self.commit(WriteBatch().upsert(collection, doc))

    async def delete(self, collection, key):
        return await self._run(_delete, collection, str(key), write=True)

    async def commit(self, batch):
        if not batch.ops:
            return
        await self._run(_apply_batch, batch, write=True)


class LocalJsonStorage(MemoryStore):
    """로컬 JSON 파일 기반 저장소 (개발용 fallback)"""

    def __init__(self, filepath=None):
        super().__init__()
        self.filepath = filepath or Config.STORE_FILE
        os.makedirs(os.path.dirname(self.filepath), exist_ok=True)
        if not os.path.exists(self.filepath):
            self._save_data({name: {} for name in COLLECTIONS})
        logger.info("로컬 JSON 저장소 초기화 완료")

    def _load_data(self):
        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            data = {}
        for name in COLLECTIONS:
            data.setdefault(name, {})
        return data

    def _save_data(self, data):
        tmp_path = f"{self.filepath}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.filepath)

    def _run_locked(self, fn, args, write):
        with _file_lock:
            data = self._load_data()
            result = fn(data, *args)
            if write:
                self._save_data(data)
            return result

    async def _run(self, fn, *args, write=False):
        try:
            return await asyncio.to_thread(self._run_locked, fn, args, write)
        except OSError as e:
            raise StoreError(f"로컬 저장소 I/O 실패: {e}") from e


def _get(state, collection, key):
    doc = state.get(collection, {}).get(key)
    return copy.deepcopy(doc) if doc is not None else None


def _query(state, collection, field_name, value):
    return [copy.deepcopy(d) for d in state.get(collection, {}).values()
            if d.get(field_name) == value]


def _list(state, collection):
    return [copy.deepcopy(d) for d in state.get(collection, {}).values()]


def _delete(state, collection, key):
    return state.get(collection, {}).pop(key, None) is not None


def _ensure_distinct_targets(batch):
    """한 배치 안에서 같은 문서를 두 번 건드릴 수 없음 (Cosmos 트랜잭션 배치와 동일)"""
    seen = set()
    for op in batch.ops:
        target = (op.collection, op.key)
        if target in seen:
            raise StoreError(f"배치에 같은 문서가 중복됨: {op.collection}/{op.key}")
        seen.add(target)


def _apply_batch(state, batch):
    _ensure_distinct_targets(batch)
    # 모든 전제 조건을 먼저 검사한 뒤에만 적용
    for op in batch.ops:
        current = state.get(op.collection, {}).get(op.key)
        if op.action == 'create' and current is not None:
            raise ConcurrencyConflict(f"이미 존재하는 문서: {op.collection}/{op.key}")
        if op.action in ('replace', 'delete'):
            if current is None:
                raise ConcurrencyConflict(f"문서를 찾을 수 없음: {op.collection}/{op.key}")
            if op.etag and current.get('_etag') != op.etag:
                raise ConcurrencyConflict(f"문서 버전 불일치: {op.collection}/{op.key}")

    for op in batch.ops:
        docs = state.setdefault(op.collection, {})
        if op.action == 'delete':
            docs.pop(op.key, None)
        else:
            stored = copy.deepcopy(op.doc)
            stored['_etag'] = _new_etag()
            docs[op.key] = stored


class CosmosStorage:
    """Azure Cosmos DB 기반 저장소

    모든 문서를 하나의 논리 파티션에 저장한다. 트랜잭션 배치는 단일 파티션 안에서만
    원자적으로 적용되기 때문이다. 문서 id 는 "<컬렉션>:<키>" 형식이다.
    """

    PARTITION_FIELD = 'partition'
    SYSTEM_FIELDS = ('_rid', '_self', '_ts', '_attachments')

    # 데이터베이스/컨테이너 생성 확인은 프로세스당 한 번
    _provisioned = False

    def __init__(self, container=None, partition_value=None):
        self.partition_value = partition_value or Config.COSMOS_PARTITION_VALUE
        self.container = container
        self._client = None

    async def __aenter__(self):
        if self.container is None:
            from azure.core.exceptions import AzureError
            from azure.cosmos import PartitionKey
            from azure.cosmos.aio import CosmosClient
            self._client = CosmosClient(Config.COSMOS_DB_ENDPOINT, credential=Config.COSMOS_DB_KEY)
            try:
                if CosmosStorage._provisioned:
                    database = self._client.get_database_client(Config.COSMOS_DATABASE_NAME)
                    self.container = database.get_container_client(Config.COSMOS_CONTAINER_NAME)
                else:
                    database = await self._client.create_database_if_not_exists(id=Config.COSMOS_DATABASE_NAME)
                    self.container = await database.create_container_if_not_exists(
                        id=Config.COSMOS_CONTAINER_NAME,
                        partition_key=PartitionKey(path=f"/{self.PARTITION_FIELD}")
                    )
                    CosmosStorage._provisioned = True
                    logger.info("Azure Cosmos DB 데이터베이스/컨테이너 확인 완료")
            except AzureError as e:
                logger.error(f"Cosmos 연결 실패: {e}")
                await self._close()
                raise StoreError(str(e)) from e
        return self

    async def __aexit__(self, *exc):
        await self._close()
        return False

    async def _close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None
            self.container = None

    def _doc_id(self, collection, key):
        return f"{collection}:{key}"

    def _to_item(self, collection, doc):
        item = _strip_meta(doc)
        item['key'] = str(doc['id'])
        item['id'] = self._doc_id(collection, doc['id'])
        item['doc_type'] = collection
        item[self.PARTITION_FIELD] = self.partition_value
        return item

    def _from_item(self, item):
        doc = {k: v for k, v in item.items()
               if k not in self.SYSTEM_FIELDS and k not in ('doc_type', 'key', self.PARTITION_FIELD)}
        doc['id'] = item.get('key', item['id'])
        return doc

    async def _query_items(self, query, parameters):
        from azure.core.exceptions import AzureError
        try:
            items = self.container.query_items(
                query=query, parameters=parameters, partition_key=self.partition_value
            )
            return [self._from_item(item) async for item in items]
        except AzureError as e:
            logger.error(f"Cosmos 조회 실패: {e}")
            raise StoreError(str(e)) from e

    async def get(self, collection, key):
        from azure.core.exceptions import AzureError
        from azure.cosmos.exceptions import CosmosResourceNotFoundError
        try:
            item = await self.container.read_item(
                item=self._doc_id(collection, key), partition_key=self.partition_value
            )
        except CosmosResourceNotFoundError:
            return None
        except AzureError as e:
            logger.error(f"Cosmos 단건 조회 실패: {collection}/{key} ({e})")
            raise StoreError(str(e)) from e
        return self._from_item(item)

    async def query(self, collection, field_name, value):
        query = f"SELECT * FROM c WHERE c.doc_type = @doc_type AND c.{field_name} = @value"
        return await self._query_items(query, [
            {"name": "@doc_type", "value": collection},
            {"name": "@value", "value": value},
        ])

    async def list(self, collection):
        query = "SELECT * FROM c WHERE c.doc_type = @doc_type"
        return await self._query_items(query, [{"name": "@doc_type", "value": collection}])

    async def put(self, collection, doc):
        from azure.core.exceptions import AzureError
        try:
            await self.container.upsert_item(body=self._to_item(collection, doc))
        except AzureError as e:
            logger.error(f"Cosmos 저장 실패: {collection}/{doc.get('id')} ({e})")
            raise StoreError(str(e)) from e

    async def delete(self, collection, key):
        from azure.core.exceptions import AzureError
        from azure.cosmos.exceptions import CosmosResourceNotFoundError
        try:
            await self.container.delete_item(
                item=self._doc_id(collection, key), partition_key=self.partition_value
            )
            return True
        except CosmosResourceNotFoundError:
            return False
        except AzureError as e:
            logger.error(f"Cosmos 삭제 실패: {collection}/{key} ({e})")
            raise StoreError(str(e)) from e

    def _batch_operations(self, batch):
        operations = []
        for op in batch.ops:
            doc_id = self._doc_id(op.collection, op.key)
            if op.action == 'create':
                operations.append(("create", (self._to_item(op.collection, op.doc),)))
            elif op.action == 'upsert':
                operations.append(("upsert", (self._to_item(op.collection, op.doc),)))
            elif op.action == 'replace':
                kwargs = {"if_match_etag": op.etag} if op.etag else {}
                operations.append(("replace", (doc_id, self._to_item(op.collection, op.doc)), kwargs))
            elif op.action == 'delete':
                kwargs = {"if_match_etag": op.etag} if op.etag else {}
                operations.append(("delete", (doc_id,), kwargs))
            else:
                raise ValueError(f"알 수 없는 배치 연산: {op.action}")
        return operations

    async def commit(self, batch):
        from azure.core.exceptions import AzureError
        from azure.cosmos.exceptions import CosmosBatchOperationError

        if not batch.ops:
            return
        if len(batch.ops) > Config.COSMOS_MAX_BATCH_OPERATIONS:
            raise StoreError(
                f"배치 연산 수 초과: {len(batch.ops)} > {Config.COSMOS_MAX_BATCH_OPERATIONS}"
            )
        _ensure_distinct_targets(batch)
        try:
            await self.container.execute_item_batch(
                batch_operations=self._batch_operations(batch),
                partition_key=self.partition_value,
            )
        except CosmosBatchOperationError as e:
            if e.status_code in (404, 409, 412):
                logger.warning(f"Cosmos 배치 충돌 (index={e.error_index}, status={e.status_code})")
                raise ConcurrencyConflict(str(e)) from e
            logger.error(f"Cosmos 배치 실패: {e}")
            raise StoreError(str(e)) from e
        except AzureError as e:
            logger.error(f"Cosmos 배치 실패: {e}")
            raise StoreError(str(e)) from e


@asynccontextmanager
async def open_store():
    """요청 단위 저장소 (Cosmos 클라이언트는 이벤트 루프에 묶이므로 요청마다 연결)"""
    storage = CosmosStorage() if Config.use_cosmos_db() else LocalJsonStorage()
    async with storage as store:
        yield store
