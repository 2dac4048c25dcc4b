"""Async access to the realtime database holding telehealth records.

Two backends share the :class:`DatabaseClient` interface: an in-memory tree
seeded from JSON fixtures (development and tests) and the Firebase Realtime
Database through ``firebase_admin``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin import exceptions as firebase_exceptions

from shared.config.settings import (
    DATA_SOURCE_CREDENTIALS,
    DATA_SOURCE_FIXTURES,
    DatabaseSettings,
)
from shared.observability.logger import get_logger
from shared.resilience import RetryPolicy, call_async_with_retry

from .fixtures import discover_fixture_paths, load_database_fixtures

logger = get_logger(__name__)

Record = dict[str, Any]
CollectionCallback = Callable[[list[Record]], None]
Unsubscribe = Callable[[], None]

FIREBASE_APP_NAME = "telehealth-reconciliation"

TRANSIENT_READ_ERRORS: tuple[type[BaseException], ...] = (
    firebase_exceptions.UnavailableError,
    firebase_exceptions.DeadlineExceededError,
    ConnectionError,
    TimeoutError,
)


class DatabaseConfigurationError(RuntimeError):
    """Raised when the database backend cannot be configured."""


class DatabaseClientError(RuntimeError):
    """Raised when a read or write fails in transport.

    Messages never include the record path, which embeds patient identifiers.
    """

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.context = dict(context or {})


def normalize_path(path: str) -> str:
    """Return ``path`` without surrounding or repeated slashes."""

    segments = [segment for segment in str(path).split("/") if segment]
    if not segments:
        raise ValueError("A database path must contain at least one segment.")
    return "/".join(segments)


def _with_id(key: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        return {"id": key, **value}
    return value


def _children(node: Any) -> list[Record]:
    if not isinstance(node, Mapping):
        return []
    return [
        _with_id(str(key), value)
        for key, value in node.items()
        if isinstance(value, Mapping)
    ]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _collection_name(path: str) -> str:
    return path.split("/", 1)[0]


class DatabaseClient(ABC):
    """Read, write and listen operations consumed by view-model assembly."""

    @abstractmethod
    async def get_document(self, path: str) -> Record | None:
        """Return the record at ``path`` with its key as ``id``, or ``None``."""

    @abstractmethod
    async def get_collection_by_filter(
        self, collection: str, field: str, value: Any
    ) -> list[Record]:
        """Return children of ``collection`` whose ``field`` equals ``value``."""

    @abstractmethod
    def listen_to_collection(
        self, path: str, callback: CollectionCallback
    ) -> Unsubscribe:
        """Invoke ``callback`` with the children of ``path`` on every change."""

    @abstractmethod
    async def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        """Merge ``fields`` into the record at ``path`` and stamp ``updatedAt``."""


class FixtureDatabaseClient(DatabaseClient):
    """In-memory database tree seeded from fixtures.

    ``fail_paths`` makes reads and writes under the given paths raise
    :class:`DatabaseClientError`, which lets tests exercise transport failures.
    """

    def __init__(
        self,
        *,
        tree: Mapping[str, Any] | None = None,
        fixture_paths: Iterable[Path] | None = None,
        fail_paths: Iterable[str] = (),
    ) -> None:
        if tree is None:
            if fixture_paths is None:
                fixture_paths = discover_fixture_paths()
            tree = load_database_fixtures(fixture_paths)
        self._tree: dict[str, Any] = deepcopy(dict(tree))
        self._fail_paths = {normalize_path(path) for path in fail_paths}
        self._listeners: dict[int, tuple[str, CollectionCallback]] = {}
        self._next_listener_id = 0
        self.reads: list[str] = []

    def _check_failure(self, path: str) -> None:
        for failing in self._fail_paths:
            if path == failing or path.startswith(failing + "/"):
                raise DatabaseClientError(
                    f"Simulated transport failure for collection '{_collection_name(path)}'.",
                    context={"collection": _collection_name(path)},
                )

    def _node(self, path: str) -> Any:
        current: Any = self._tree
        for segment in path.split("/"):
            if not isinstance(current, Mapping) or segment not in current:
                return None
            current = current[segment]
        return current

    async def get_document(self, path: str) -> Record | None:
        normalized = normalize_path(path)
        self.reads.append(normalized)
        self._check_failure(normalized)
        node = self._node(normalized)
        if node is None:
            return None
        return _with_id(normalized.rsplit("/", 1)[-1], deepcopy(node))

    async def get_collection_by_filter(
        self, collection: str, field: str, value: Any
    ) -> list[Record]:
        normalized = normalize_path(collection)
        self.reads.append(normalized)
        self._check_failure(normalized)
        return [
            deepcopy(child)
            for child in _children(self._node(normalized))
            if child.get(field) == value
        ]

    def listen_to_collection(
        self, path: str, callback: CollectionCallback
    ) -> Unsubscribe:
        normalized = normalize_path(path)
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = (normalized, callback)
        self._notify(normalized, callback)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self, path: str, callback: CollectionCallback) -> None:
        try:
            callback(deepcopy(_children(self._node(path))))
        except Exception as exc:
            logger.warning(
                "listener_callback_failed",
                collection=_collection_name(path),
                error_type=exc.__class__.__name__,
            )

    async def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        normalized = normalize_path(path)
        self._check_failure(normalized)

        current: dict[str, Any] = self._tree
        for segment in normalized.split("/"):
            child = current.get(segment)
            if not isinstance(child, dict):
                child = {}
                current[segment] = child
            current = child
        current.update(deepcopy(dict(fields)))
        current["updatedAt"] = _timestamp()

        for listened_path, callback in list(self._listeners.values()):
            if normalized == listened_path or normalized.startswith(listened_path + "/"):
                self._notify(listened_path, callback)


class FirebaseDatabaseClient(DatabaseClient):
    """Firebase Realtime Database backend built on ``firebase_admin.db``.

    The Admin SDK is synchronous, so every call runs in a worker thread.
    Reads retry transient transport errors; writes are attempted once.
    """

    def __init__(
        self,
        *,
        database_url: str | None = None,
        credentials_path: Path | None = None,
        root: Any | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.database_url = database_url
        self.credentials_path = Path(credentials_path) if credentials_path else None
        self._retry_policy = retry_policy or RetryPolicy(
            retry_exceptions=TRANSIENT_READ_ERRORS
        )
        self._app: firebase_admin.App | None = None
        self._root = root if root is not None else self._create_root()

    def _create_root(self) -> Any:
        if not self.database_url:
            raise DatabaseConfigurationError(
                "A database URL is required for the Firebase backend."
            )
        if self.credentials_path is not None and not self.credentials_path.exists():
            raise DatabaseConfigurationError(
                f"Firebase credentials file '{self.credentials_path}' does not exist."
            )

        try:
            self._app = firebase_admin.get_app(FIREBASE_APP_NAME)
        except ValueError:
            credential = (
                credentials.Certificate(str(self.credentials_path))
                if self.credentials_path is not None
                else credentials.ApplicationDefault()
            )
            self._app = firebase_admin.initialize_app(
                credential,
                {"databaseURL": self.database_url},
                name=FIREBASE_APP_NAME,
            )
        return db.reference("/", app=self._app)

    def _sanitized_error(self, operation: str, path: str, error: Exception) -> DatabaseClientError:
        collection = _collection_name(path)
        error_type = error.__class__.__name__
        return DatabaseClientError(
            f"Failed to {operation} a record in collection '{collection}'. "
            f"Reason: {error_type}.",
            context={
                "operation": operation,
                "collection": collection,
                "error_type": error_type,
            },
        )

    async def _read(self, path: str, operation: Callable[[], Any]) -> Any:
        try:
            return await call_async_with_retry(
                asyncio.to_thread, operation, policy=self._retry_policy
            )
        except Exception as exc:
            raise self._sanitized_error("read", path, exc) from None

    async def get_document(self, path: str) -> Record | None:
        normalized = normalize_path(path)
        value = await self._read(normalized, self._root.child(normalized).get)
        if value is None:
            return None
        return _with_id(normalized.rsplit("/", 1)[-1], value)

    async def get_collection_by_filter(
        self, collection: str, field: str, value: Any
    ) -> list[Record]:
        normalized = normalize_path(collection)
        query = self._root.child(normalized).order_by_child(field).equal_to(value)
        try:
            node = await self._read(normalized, query.get)
        except DatabaseClientError as exc:
            if exc.context.get("error_type") != "InvalidArgumentError":
                raise
            # Missing ``.indexOn`` rule: filter the whole collection locally.
            logger.info("collection_index_missing", collection=normalized, field=field)
            node = await self._read(normalized, self._root.child(normalized).get)
            return [child for child in _children(node) if child.get(field) == value]
        return _children(node)

    def listen_to_collection(
        self, path: str, callback: CollectionCallback
    ) -> Unsubscribe:
        normalized = normalize_path(path)
        reference = self._root.child(normalized)

        def _on_event(_event: Any) -> None:
            try:
                callback(_children(reference.get()))
            except Exception as exc:
                logger.warning(
                    "listener_callback_failed",
                    collection=_collection_name(normalized),
                    error_type=exc.__class__.__name__,
                )

        registration = reference.listen(_on_event)
        return registration.close

    async def update_document(self, path: str, fields: Mapping[str, Any]) -> None:
        normalized = normalize_path(path)
        payload = {**dict(fields), "updatedAt": _timestamp()}
        try:
            await asyncio.to_thread(self._root.child(normalized).update, payload)
        except Exception as exc:
            raise self._sanitized_error("update", normalized, exc) from None

    def close(self) -> None:
        """Release the Firebase app created by this client, if any."""

        if self._app is not None:
            firebase_admin.delete_app(self._app)
            self._app = None


def create_database_client(settings: DatabaseSettings | None = None) -> DatabaseClient:
    """Return the database backend selected by ``settings``."""

    resolved = settings or DatabaseSettings()
    mode = (resolved.source or DATA_SOURCE_FIXTURES).strip().lower()

    if mode == DATA_SOURCE_FIXTURES:
        directory = None
        if resolved.fixtures_dir:
            directory = Path(resolved.fixtures_dir)
            if not directory.exists():
                raise DatabaseConfigurationError(
                    f"Configured fixture directory '{directory}' does not exist."
                )
        return FixtureDatabaseClient(fixture_paths=discover_fixture_paths(directory))

    if mode == DATA_SOURCE_CREDENTIALS:
        credentials_path = (
            Path(resolved.credentials_file) if resolved.credentials_file else None
        )
        return FirebaseDatabaseClient(
            database_url=resolved.url,
            credentials_path=credentials_path,
        )

    raise DatabaseConfigurationError(
        f"Unsupported database source '{mode}'. Supported sources: "
        f"{DATA_SOURCE_FIXTURES}, {DATA_SOURCE_CREDENTIALS}."
    )


__all__ = [
    "CollectionCallback",
    "DatabaseClient",
    "DatabaseClientError",
    "DatabaseConfigurationError",
    "FirebaseDatabaseClient",
    "FixtureDatabaseClient",
    "Record",
    "Unsubscribe",
    "create_database_client",
    "normalize_path",
]
