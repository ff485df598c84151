"""
Local footprint store.

Both the sync path and the event path write through this service. Writes
for one dataId are serialized and resolved by version: a lower version than
the stored one is rejected as stale, an equal or higher one replaces the
stored document as a whole. Documents are never merged field by field.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import ValidationConfig, get_config
from ..constants import SaveAction
from ..exceptions import ErrorCode, ValidationError, not_found
from ..processing.footprint_tree import BreakdownIssue, check_breakdown, clone_footprint
from ..repositories.base_repository import FootprintRepository
from ..repositories.memory_repository import InMemoryFootprintRepository
from ..schemas.footprint_schemas import ChildFootprint, Footprint
from ..utils.logger import get_logger


class _DataIdLock:
    """Lock for one dataId, counted so the entry can be dropped once unused."""

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class SaveResult(BaseModel):
    """Outcome of one save."""

    footprint: Footprint = Field(..., description="The stored footprint (the existing one when stale)")
    action: SaveAction
    issues: List[BreakdownIssue] = Field(default_factory=list)


class FootprintStore:
    """Version-ordered footprint writes with breakdown validation."""

    def __init__(
        self,
        repository: Optional[FootprintRepository] = None,
        config: Optional[ValidationConfig] = None,
    ):
        self.repository = repository or InMemoryFootprintRepository()
        self.config = config or get_config().validation
        self._locks: Dict[str, _DataIdLock] = {}
        self._locks_lock = threading.Lock()
        self.logger = get_logger()

    @contextmanager
    def _locked(self, data_id: str):
        with self._locks_lock:
            entry = self._locks.get(data_id)
            if entry is None:
                entry = self._locks[data_id] = _DataIdLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[data_id]

    def _resolve(self, child: ChildFootprint) -> Optional[Footprint]:
        if child.product_footprint_id is not None:
            return self.repository.get(child.product_footprint_id)
        if child.data_id:
            return self.repository.get_by_data_id(child.data_id)
        return None

    def check(self, footprint: Footprint) -> List[BreakdownIssue]:
        """Breakdown issues of footprint, resolving children against stored footprints."""
        return check_breakdown(footprint, self.config.breakdown_tolerance, self._resolve)

    def save(self, footprint: Footprint) -> SaveResult:
        """
        Store a footprint.

        The caller's object is never mutated; the stored copy gets the local
        productFootprintId of any footprint already stored under its dataId.

        Raises:
            ValidationError: If the breakdown is inconsistent and blocking is configured
        """
        candidate = clone_footprint(footprint)
        with self._locked(candidate.data_id):
            existing = self.repository.get_by_data_id(candidate.data_id)
            if existing is not None and candidate.version < existing.version:
                self.logger.info(
                    "Stale footprint ignored",
                    extra={
                        "data_id": candidate.data_id,
                        "version": candidate.version,
                        "stored_version": existing.version,
                    },
                )
                return SaveResult(footprint=existing, action=SaveAction.STALE)

            issues = self.check(candidate)
            if issues:
                if self.config.block_on_breakdown_mismatch:
                    raise ValidationError(
                        "Breakdown totals do not match the declared totals",
                        field="breakdown",
                        error_code=ErrorCode.INCONSISTENT_BREAKDOWN,
                        data_id=candidate.data_id,
                        issues=[issue.message for issue in issues],
                    )
                self.logger.warning(
                    "Footprint stored with inconsistent breakdown",
                    extra={"data_id": candidate.data_id, "issue_count": len(issues)},
                )

            if existing is not None:
                candidate.product_footprint_id = existing.product_footprint_id
            stored = self.repository.put(candidate)

        action = SaveAction.REPLACED if existing is not None else SaveAction.CREATED
        self.logger.debug(
            "Footprint saved",
            extra={
                "data_id": stored.data_id,
                "version": stored.version,
                "product_footprint_id": stored.product_footprint_id,
                "action": action.value,
            },
        )
        return SaveResult(footprint=stored, action=action, issues=issues)

    def get(self, product_footprint_id: int) -> Footprint:
        """
        Raises:
            NotFoundError: If no footprint has that id
        """
        footprint = self.repository.get(product_footprint_id)
        if footprint is None:
            raise not_found("Footprint", product_footprint_id=product_footprint_id)
        return footprint

    def get_by_data_id(self, data_id: str) -> Optional[Footprint]:
        return self.repository.get_by_data_id(data_id)

    def local_version(self, data_id: str) -> Optional[int]:
        footprint = self.repository.get_by_data_id(data_id)
        return footprint.version if footprint is not None else None

    def list(self) -> List[Footprint]:
        return self.repository.list()

    def delete(self, product_footprint_id: int) -> None:
        """
        Raises:
            NotFoundError: If no footprint has that id
        """
        footprint = self.get(product_footprint_id)
        with self._locked(footprint.data_id):
            if not self.repository.delete(product_footprint_id):
                raise not_found("Footprint", product_footprint_id=product_footprint_id)
        self.logger.info(
            "Footprint deleted",
            extra={"product_footprint_id": product_footprint_id, "data_id": footprint.data_id},
        )

    def duplicate(self, product_footprint_id: int, data_id: str) -> Footprint:
        """
        Unsaved copy of a stored footprint under a new dataId, for editing.

        The copy has no local id and no data source, so saving it creates a
        new local footprint and leaves the original untouched.
        """
        copy = clone_footprint(self.get(product_footprint_id))
        copy.product_footprint_id = None
        copy.data_source_id = None
        copy.data_id = data_id
        return copy
