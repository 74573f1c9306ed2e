"""
Durable per-entity watermark state.

The WatermarkStore owns the list of entities and their last sync times. It
is the only thing that mutates them, and all access goes through one
reentrant lock, so the store can be shared between concurrent callers even
though a run processes entities one at a time.

State file format (JSON array, sorted by entity, 2-space indent):

    [
      {
        "entity": "crm.orders",
        "lastRunTime": "2025-01-15T00:00:00",
        "active": true
      }
    ]

`lastRunTime` is "" for an entity that has never been synced.

Persistence is write-to-temp then os.replace, so an interrupted write
leaves the previous file untouched. When a remote mirror is configured,
every successful local write is followed by a best-effort upload of the
same content; the local file stays authoritative.
"""
import asyncio
import json
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from trickle.core.templates import TemplateLoader
from trickle.core.window import format_timestamp, parse_timestamp
from trickle.messages import get_logger
from trickle.utility.exceptions import (
    RemoteStorageError,
    TemplateError,
    WatermarkError,
    WatermarkNotFoundError,
    WatermarkPersistError,
)


class EntityWatermark(BaseModel):
    """One tracked entity and the point up to which it has been exported."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., alias="entity", min_length=1, description="Entity name")
    last_sync_time: Optional[datetime] = Field(
        default=None,
        alias="lastRunTime",
        description="End of the last successfully exported window",
    )
    active: bool = Field(default=False, description="Whether runs export it")

    @field_validator("last_sync_time", mode="before")
    @classmethod
    def parse_last_sync_time(cls, v):
        if v is None or isinstance(v, datetime):
            return v
        if isinstance(v, str):
            try:
                return parse_timestamp(v)
            except ValueError as e:
                raise ValueError(
                    f"lastRunTime must be empty or YYYY-MM-DDTHH:MM:SS, got '{v}'"
                ) from e
        raise ValueError(f"lastRunTime must be a string, got {type(v).__name__}")

    @field_serializer("last_sync_time")
    def serialize_last_sync_time(self, v: Optional[datetime]) -> str:
        return format_timestamp(v) if v is not None else ""


class WatermarkStore:
    """
    Lock-protected watermark state backed by a local JSON file.

    Build one with `await WatermarkStore.load(...)`. Readers get copies;
    the only mutation is `update_timestamp`, which persists before
    returning.
    """

    def __init__(
        self,
        path: Union[str, Path],
        entities: Optional[List[EntityWatermark]] = None,
        mirror: Optional[Any] = None,
        mirror_key: Optional[str] = None,
    ):
        """
        Args:
            path: Local state file
            entities: Initial entity list
            mirror: Optional remote copy; any object with async
                `read_bytes(key)` and `upload_bytes(data, key)`, such as
                ADLSOperations
            mirror_key: Key of the state file in the mirror
        """
        self.path = Path(path)
        self.mirror = mirror
        self.mirror_key = mirror_key
        self._entities = sorted(entities or [], key=lambda e: e.name)
        self._lock = threading.RLock()
        self._mirror_lock = asyncio.Lock()
        self.logger = get_logger("trickle.watermark")

    # Loading

    @classmethod
    async def load(
        cls,
        path: Union[str, Path],
        mirror: Optional[Any] = None,
        mirror_key: Optional[str] = None,
    ) -> "WatermarkStore":
        """
        Load watermark state.

        With a mirror, the remote copy is tried first and, when it can be
        read, adopted and written back to the local file. If the remote copy
        is absent or unreadable the local file is used; if that is missing
        too, the store starts empty. Without a mirror a missing local file
        is an error.

        Raises:
            WatermarkError: If the state cannot be read or is invalid
        """
        path = Path(path)
        logger = get_logger("trickle.watermark")

        if mirror is not None:
            entities = await cls._fetch_mirror(mirror, mirror_key, logger)
            if entities is not None:
                store = cls(path, entities, mirror, mirror_key)
                try:
                    await asyncio.to_thread(store._write_local)
                except WatermarkPersistError as e:
                    logger.warning(f"Could not refresh local state copy: {e}")
                logger.debug(f"Loaded state from remote {mirror_key}")
                return store

        if not path.exists():
            if mirror is not None:
                logger.warning(
                    f"No state found remotely or at {path}, starting with empty state"
                )
                return cls(path, [], mirror, mirror_key)
            raise WatermarkError(
                f"State file not found: {path}", operation="load state"
            )

        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise WatermarkError(
                f"Cannot read state file {path}: {e}", operation="load state"
            ) from e

        entities = cls._parse(data, str(path))
        logger.debug(f"Loaded state from {path}")
        return cls(path, entities, mirror, mirror_key)

    @classmethod
    async def _fetch_mirror(
        cls, mirror: Any, mirror_key: Optional[str], logger
    ) -> Optional[List[EntityWatermark]]:
        """Remote entity list, or None when it is absent or unusable."""
        try:
            data = await mirror.read_bytes(mirror_key)
        except (RemoteStorageError, TimeoutError) as e:
            logger.warning(f"Could not fetch remote state {mirror_key}: {e}")
            return None

        if data is None:
            logger.debug(f"No remote state at {mirror_key}")
            return None

        try:
            return cls._parse(data, f"remote {mirror_key}")
        except WatermarkError as e:
            logger.warning(f"Ignoring remote state: {e}")
            return None

    @staticmethod
    def _parse(data: bytes, origin: str) -> List[EntityWatermark]:
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WatermarkError(
                f"Invalid JSON in {origin}: {e}", operation="parse state"
            ) from e

        if not isinstance(raw, list):
            raise WatermarkError(
                f"State in {origin} must be a JSON array", operation="parse state"
            )

        try:
            entities = [EntityWatermark.model_validate(item) for item in raw]
        except ValidationError as e:
            raise WatermarkError(
                f"Invalid entity in {origin}: {e}", operation="parse state"
            ) from e

        seen = set()
        for entity in entities:
            if entity.name in seen:
                raise WatermarkError(
                    f"Duplicate entity '{entity.name}' in {origin}",
                    operation="parse state",
                )
            seen.add(entity.name)
        return entities

    # Reading

    def get_entities(self) -> List[EntityWatermark]:
        """Copy of every entity, sorted by name."""
        with self._lock:
            return [entity.model_copy() for entity in self._entities]

    def get_active(self) -> List[EntityWatermark]:
        """Copy of the active entities, sorted by name."""
        with self._lock:
            return [entity.model_copy() for entity in self._entities if entity.active]

    def find(self, name: str) -> Optional[EntityWatermark]:
        with self._lock:
            entity = self._find_locked(name)
            return entity.model_copy() if entity is not None else None

    @property
    def total_count(self) -> int:
        with self._lock:
            return len(self._entities)

    @property
    def active_count(self) -> int:
        with self._lock:
            return sum(1 for entity in self._entities if entity.active)

    def validate_templates(self, templates: Union[str, Path, TemplateLoader]) -> None:
        """
        Check that every active entity has a query template.

        Raises:
            TemplateError: Listing every active entity without a template
        """
        if isinstance(templates, TemplateLoader):
            loader = templates
        else:
            loader = TemplateLoader(templates)
        missing = loader.missing(entity.name for entity in self.get_active())
        if missing:
            raise TemplateError(
                f"Missing query templates in {loader.sql_dir} "
                f"for: {', '.join(missing)}",
                operation="validate templates",
            )

    # Writing

    async def update_timestamp(self, name: str, timestamp: datetime) -> None:
        """
        Record a successful export of `name` up to `timestamp`.

        The local file is rewritten before this returns; the remote mirror
        push afterwards is best effort.

        Raises:
            WatermarkNotFoundError: If the entity is not in the state
            WatermarkError: If `timestamp` is earlier than the stored one
            WatermarkPersistError: If the local file could not be written
        """
        await asyncio.to_thread(self._commit, name, timestamp)
        await self._push_mirror()

    def _commit(self, name: str, timestamp: datetime) -> None:
        with self._lock:
            entity = self._find_locked(name)
            if entity is None:
                raise WatermarkNotFoundError(
                    f"Entity '{name}' not found in state", operation="update watermark"
                )
            previous = entity.last_sync_time
            if previous is not None and timestamp < previous:
                raise WatermarkError(
                    f"Refusing to move '{name}' back from "
                    f"{format_timestamp(previous)} to {format_timestamp(timestamp)}",
                    operation="update watermark",
                )

            entity.last_sync_time = timestamp
            try:
                self._write_local()
            except WatermarkPersistError:
                entity.last_sync_time = previous
                raise

    def _serialize(self) -> bytes:
        with self._lock:
            ordered = sorted(self._entities, key=lambda e: e.name)
            payload = [entity.model_dump(by_alias=True) for entity in ordered]
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
        return text.encode("utf-8")

    def _write_local(self) -> None:
        with self._lock:
            payload = self._serialize()
            temp_path = self.path.with_name(f"{self.path.name}.tmp_{uuid4().hex}")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(temp_path, "wb") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, self.path)
            except OSError as e:
                temp_path.unlink(missing_ok=True)
                raise WatermarkPersistError(
                    f"Cannot write state file {self.path}: {e}",
                    operation="persist state",
                ) from e

    async def _push_mirror(self) -> None:
        if self.mirror is None:
            return
        async with self._mirror_lock:
            payload = self._serialize()
            try:
                await self.mirror.upload_bytes(payload, self.mirror_key)
                self.logger.debug(f"Mirrored state to {self.mirror_key}")
            except (RemoteStorageError, TimeoutError) as e:
                self.logger.warning(
                    f"Could not mirror state to {self.mirror_key}, "
                    f"local copy is kept: {e}"
                )

    def _find_locked(self, name: str) -> Optional[EntityWatermark]:
        for entity in self._entities:
            if entity.name == name:
                return entity
        return None
