"""
Document storage and version listing.

Each saved document is one JSON file. Versions are numbered per
(user, document type, program), starting at 1.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import aiofiles

from logger import get_logger, log_event

logger = get_logger(__name__)


@dataclass
class StoredDocument:
    id: str
    document_type: str
    content: str
    version_number: int
    program_id: Optional[str] = None
    user_id: Optional[str] = None
    file_name: Optional[str] = None
    feedback: Optional[Dict[str, Any]] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "documentType": self.document_type,
            "linkedProgramId": self.program_id,
            "userId": self.user_id,
            "contentRaw": self.content,
            "fileName": self.file_name,
            "feedback": self.feedback,
            "versionNumber": self.version_number,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class DocumentStore(Protocol):
    async def create_document(self, document_type: str, content: str, program_id: Optional[str] = None,
                              user_id: Optional[str] = None, file_name: Optional[str] = None) -> str: ...

    async def update_document(self, document_id: str, **changes: Any) -> StoredDocument: ...

    async def get_document(self, document_id: str) -> Optional[StoredDocument]: ...

    async def list_versions(self, document_type: str, program_id: Optional[str] = None,
                            user_id: Optional[str] = None) -> List[StoredDocument]: ...


class FileDocumentStore:
    """Persists documents under storage_dir with an in-memory cache."""

    UPDATABLE = {"content", "feedback", "file_name", "program_id"}

    def __init__(self, storage_dir: str) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._cache: Dict[str, StoredDocument] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    def _path(self, document_id: str) -> Path:
        return self.storage_dir / f"document_{document_id}.json"

    async def _persist(self, doc: StoredDocument) -> None:
        async with aiofiles.open(self._path(doc.id), "w", encoding="utf-8") as f:
            await f.write(json.dumps(asdict(doc), indent=2, ensure_ascii=False))

    async def _load_all(self) -> None:
        if self._loaded:
            return
        for path in sorted(self.storage_dir.glob("document_*.json")):
            try:
                async with aiofiles.open(path, "r", encoding="utf-8") as f:
                    data = json.loads(await f.read())
                doc = StoredDocument(**data)
                self._cache.setdefault(doc.id, doc)
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(f"Skipping unreadable document {path.name}: {e}")
        self._loaded = True

    def _versions_unlocked(self, document_type: str, program_id: Optional[str],
                           user_id: Optional[str]) -> List[StoredDocument]:
        return [
            d for d in self._cache.values()
            if d.document_type == document_type and d.program_id == program_id and d.user_id == user_id
        ]

    async def create_document(self, document_type: str, content: str, program_id: Optional[str] = None,
                              user_id: Optional[str] = None, file_name: Optional[str] = None) -> str:
        async with self._lock:
            await self._load_all()
            existing = self._versions_unlocked(document_type, program_id, user_id)
            doc = StoredDocument(
                id=uuid.uuid4().hex,
                document_type=document_type,
                content=content,
                version_number=max((d.version_number for d in existing), default=0) + 1,
                program_id=program_id,
                user_id=user_id,
                file_name=file_name,
            )
            self._cache[doc.id] = doc
            await self._persist(doc)
        log_event("DOCUMENT_SAVED", f"{document_type} v{doc.version_number} ({doc.id})")
        return doc.id

    async def update_document(self, document_id: str, **changes: Any) -> StoredDocument:
        unknown = set(changes) - self.UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        async with self._lock:
            await self._load_all()
            doc = self._cache.get(document_id)
            if doc is None:
                raise KeyError(document_id)
            for key, value in changes.items():
                setattr(doc, key, value)
            doc.updated_at = time.time()
            await self._persist(doc)
        return doc

    async def get_document(self, document_id: str) -> Optional[StoredDocument]:
        async with self._lock:
            await self._load_all()
            return self._cache.get(document_id)

    async def list_versions(self, document_type: str, program_id: Optional[str] = None,
                            user_id: Optional[str] = None) -> List[StoredDocument]:
        """Newest version first."""
        async with self._lock:
            await self._load_all()
            versions = self._versions_unlocked(document_type, program_id, user_id)
        return sorted(versions, key=lambda d: d.version_number, reverse=True)
