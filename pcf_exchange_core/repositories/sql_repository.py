"""
SQLAlchemy-backed repositories.

Each call runs in its own session and transaction. Database errors are
mapped onto RepositoryError so callers never see driver exceptions.
"""

from contextlib import contextmanager
from typing import Any, Iterator, List, NoReturn, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..db.db_config import DatabaseManager, get_db_manager
from ..db.db_data_source_models import DataSourceRecord, EndpointRecord
from ..db.db_footprint_models import FootprintRecord
from ..exceptions import ErrorCode, RepositoryError, duplicate
from ..schemas.data_source_schemas import DataSource, Endpoint
from ..schemas.footprint_schemas import Footprint
from ..utils.encryption_utils import decrypt_secret, encrypt_secret
from ..utils.logger import get_logger
from .base_repository import DataSourceRepository, FootprintRepository


class SQLRepositoryMixin:
    """Session handling and error mapping shared by the SQL repositories."""

    entity_name = "Record"

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager or get_db_manager()
        self.logger = get_logger()

    @contextmanager
    def _session_scope(self, operation_name: str) -> Iterator[Session]:
        session = self.db_manager.get_session()
        try:
            yield session
            session.commit()
        except RepositoryError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            self._handle_db_error(e, operation_name)
        finally:
            session.close()

    def _handle_db_error(self, e: Exception, operation_name: str, **context: Any) -> NoReturn:
        """
        Map database errors onto RepositoryError.

        Raises:
            RepositoryError: With an error code matching the failure
        """
        error_context = {"operation_name": operation_name, "entity_type": self.entity_name, **context}

        if isinstance(e, IntegrityError):
            error_message = str(e.orig).lower() if hasattr(e, "orig") else str(e).lower()
            if "unique" in error_message or "duplicate" in error_message:
                self.logger.warning(
                    f"Duplicate {self.entity_name} in {operation_name}", extra=error_context
                )
                raise duplicate(resource_type=self.entity_name, cause=e, **error_context)
            raise RepositoryError(
                f"Database constraint violation for {self.entity_name}",
                error_code=ErrorCode.CONSTRAINT_VIOLATION,
                cause=e,
                **error_context,
            )

        raise RepositoryError(
            f"Database error for {self.entity_name}",
            error_code=ErrorCode.DATABASE_ERROR,
            cause=e,
            **error_context,
        )


class SQLDataSourceRepository(SQLRepositoryMixin, DataSourceRepository):
    """Data sources with their endpoints; the secret is encrypted at rest."""

    entity_name = "DataSource"

    def _to_schema(self, session: Session, record: DataSourceRecord) -> DataSource:
        return DataSource(
            data_source_id=record.id,
            data_source_name=record.name,
            data_source_type=record.source_type,
            user_name=record.user_name,
            password=decrypt_secret(session, record.password, record.id) or "",
            endpoints=[
                Endpoint(type=endpoint.action_kind, url=endpoint.url) for endpoint in record.endpoints
            ],
        )

    def _query(self):
        return select(DataSourceRecord).options(selectinload(DataSourceRecord.endpoints))

    def get(self, key: str) -> Optional[DataSource]:
        with self._session_scope("get") as session:
            record = session.scalars(self._query().where(DataSourceRecord.id == key)).first()
            return self._to_schema(session, record) if record else None

    def list(self) -> List[DataSource]:
        with self._session_scope("list") as session:
            records = session.scalars(self._query().order_by(DataSourceRecord.created_at)).all()
            return [self._to_schema(session, record) for record in records]

    def put(self, value: DataSource) -> DataSource:
        with self._session_scope("put") as session:
            record = session.scalars(
                self._query().where(DataSourceRecord.id == value.data_source_id)
            ).first()
            if record is None:
                record = DataSourceRecord(id=value.data_source_id)
                session.add(record)
            record.name = value.data_source_name
            record.source_type = value.data_source_type.value
            record.user_name = value.user_name
            record.password = encrypt_secret(
                session, value.password.get_secret_value(), value.data_source_id
            )
            # Replace the endpoint set; flush deletes first so the unique kind index holds
            record.endpoints.clear()
            session.flush()
            record.endpoints.extend(
                EndpointRecord(position=index, action_kind=endpoint.type.value, url=endpoint.url)
                for index, endpoint in enumerate(value.endpoints)
            )
            session.flush()
            return self._to_schema(session, record)

    def delete(self, key: str) -> bool:
        with self._session_scope("delete") as session:
            record = session.get(DataSourceRecord, key)
            if record is None:
                return False
            session.delete(record)
            return True


class SQLFootprintRepository(SQLRepositoryMixin, FootprintRepository):
    """Footprints stored as whole documents."""

    entity_name = "Footprint"

    @staticmethod
    def _to_schema(record: FootprintRecord) -> Footprint:
        footprint = Footprint.from_record(record.document)
        footprint.product_footprint_id = record.product_footprint_id
        return footprint

    def get(self, key: int) -> Optional[Footprint]:
        with self._session_scope("get") as session:
            record = session.get(FootprintRecord, key)
            return self._to_schema(record) if record else None

    def get_by_data_id(self, data_id: str) -> Optional[Footprint]:
        with self._session_scope("get_by_data_id") as session:
            record = session.scalars(
                select(FootprintRecord).where(FootprintRecord.data_id == data_id)
            ).first()
            return self._to_schema(record) if record else None

    def list(self) -> List[Footprint]:
        with self._session_scope("list") as session:
            records = session.scalars(
                select(FootprintRecord).order_by(FootprintRecord.product_footprint_id)
            ).all()
            return [self._to_schema(record) for record in records]

    def put(self, value: Footprint) -> Footprint:
        with self._session_scope("put") as session:
            record = None
            if value.product_footprint_id is not None:
                record = session.get(FootprintRecord, value.product_footprint_id)
            if record is None:
                record = session.scalars(
                    select(FootprintRecord).where(FootprintRecord.data_id == value.data_id)
                ).first()
            if record is None:
                record = FootprintRecord(product_footprint_id=value.product_footprint_id)
                session.add(record)
            record.data_id = value.data_id
            record.version = value.version
            record.status = value.status.value
            record.data_source_id = value.data_source_id
            session.flush()
            document = value.to_record()
            document["productFootprintId"] = record.product_footprint_id
            record.document = document
            session.flush()
            return self._to_schema(record)

    def delete(self, key: int) -> bool:
        with self._session_scope("delete") as session:
            record = session.get(FootprintRecord, key)
            if record is None:
                return False
            session.delete(record)
            return True
