"""
Trace Store
Best-effort relational persistence of finished traces, with the chain nodes and
suggestions also normalized into their own tables for querying.
"""

import uuid
from functools import lru_cache
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from causetrace.config import DATABASE_URL, logger
from causetrace.exceptions import PersistenceFailure
from causetrace.schemas import TraceResult

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TraceRecord(Base):
    __tablename__ = "traces"
    id = sa.Column(sa.String(36), primary_key=True)
    input_text = sa.Column(sa.Text, nullable=False)
    thinking = sa.Column(sa.Text, nullable=True)
    symptoms = sa.Column(sa.JSON, nullable=True)
    chains = sa.Column(sa.JSON, nullable=False)
    summary = sa.Column(sa.Text, nullable=True)
    suggestions = sa.Column(sa.JSON, nullable=False, default=list)
    created_at = sa.Column(sa.DateTime(timezone=True), nullable=False, default=_utcnow)

    nodes = relationship("TraceNodeRecord", back_populates="trace", cascade="all, delete-orphan")
    suggestion_rows = relationship("SuggestionRecord", back_populates="trace", cascade="all, delete-orphan")


class TraceNodeRecord(Base):
    __tablename__ = "trace_nodes"
    id = sa.Column(sa.Integer, primary_key=True, autoincrement=True)
    trace_id = sa.Column(sa.String(36), sa.ForeignKey("traces.id"), nullable=False, index=True)
    chain_id = sa.Column(sa.Text, nullable=False)
    node_type = sa.Column(sa.Text, nullable=False)  # "symptom" | "mechanism" | "root-cause"
    title = sa.Column(sa.Text, nullable=False)
    description = sa.Column(sa.Text, nullable=True)
    confidence = sa.Column(sa.Float, nullable=True)
    position = sa.Column(sa.Integer, nullable=False, default=0)  # chain index * 100 + node index

    trace = relationship("TraceRecord", back_populates="nodes")


class SuggestionRecord(Base):
    __tablename__ = "suggestions"
    id = sa.Column(sa.Integer, primary_key=True, autoincrement=True)
    trace_id = sa.Column(sa.String(36), sa.ForeignKey("traces.id"), nullable=False, index=True)
    text = sa.Column(sa.Text, nullable=False)
    urgency = sa.Column(sa.Text, nullable=False, default="info")
    for_doctor = sa.Column(sa.Boolean, nullable=False, default=False)

    trace = relationship("TraceRecord", back_populates="suggestion_rows")


class TraceStore:
    """SQLAlchemy-backed store for trace results."""

    def __init__(self, url: str = DATABASE_URL, engine: Optional[sa.engine.Engine] = None):
        self.engine = engine or sa.create_engine(url)
        self.Session = sessionmaker(self.engine, expire_on_commit=False)
        self._schema_ready = False

    def _ensure_schema(self):
        if not self._schema_ready:
            Base.metadata.create_all(self.engine)
            self._schema_ready = True

    def persist(self, result: TraceResult) -> str:
        """
        Write a finished trace in one transaction.

        Returns:
            The new trace id

        Raises:
            PersistenceFailure: Any database error
        """
        trace_id = str(uuid.uuid4())
        record = TraceRecord(
            id=trace_id,
            input_text=result.input_text,
            thinking=result.thinking,
            symptoms=result.symptoms.to_wire() if result.symptoms is not None else None,
            chains=[chain.to_wire() for chain in result.chains],
            summary=result.summary,
            suggestions=[suggestion.to_wire() for suggestion in result.suggestions],
        )
        record.nodes = [
            TraceNodeRecord(
                chain_id=chain.id,
                node_type=node.type,
                title=node.title,
                description=node.description,
                confidence=node.confidence,
                position=chain_index * 100 + node_index,
            )
            for chain_index, chain in enumerate(result.chains)
            for node_index, node in enumerate(chain.nodes)
        ]
        record.suggestion_rows = [
            SuggestionRecord(text=s.text, urgency=s.urgency, for_doctor=s.for_doctor)
            for s in result.suggestions
        ]

        try:
            self._ensure_schema()
            with self.Session.begin() as session:
                session.add(record)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Trace store write failed: {e}", stage="persisting") from e

        logger.info(f"Stored trace {trace_id}")
        return trace_id

    def recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Newest traces first, as short history entries."""
        try:
            self._ensure_schema()
            with self.Session() as session:
                rows = session.execute(
                    sa.select(TraceRecord).order_by(TraceRecord.created_at.desc()).limit(limit)
                ).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Trace store read failed: {e}") from e
        return [
            {
                "id": row.id,
                "inputText": row.input_text,
                "summary": row.summary,
                "chainCount": len(row.chains or []),
                "createdAt": row.created_at.isoformat(),
            }
            for row in rows
        ]

    def get(self, trace_id: str) -> Optional[Dict[str, Any]]:
        try:
            self._ensure_schema()
            with self.Session() as session:
                row = session.get(TraceRecord, trace_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Trace store read failed: {e}") from e
        if row is None:
            return None
        return {
            "id": row.id,
            "inputText": row.input_text,
            "thinking": row.thinking,
            "symptoms": row.symptoms,
            "chains": row.chains,
            "summary": row.summary,
            "suggestions": row.suggestions,
            "createdAt": row.created_at.isoformat(),
        }


@lru_cache(maxsize=None)
def get_trace_store() -> TraceStore:
    """Process-wide store on DATABASE_URL; the engine pools its own connections."""
    return TraceStore()
