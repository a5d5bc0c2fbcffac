"""
Mixin SQLAlchemy per modelli
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Chiave primaria UUID e timestamp di audit condivisi da tutte le tabelle.
"""

import datetime
import uuid

from sqlalchemy import DateTime, Uuid, event
from sqlalchemy.orm import Mapped, Session, mapped_column
from sqlalchemy.sql import func


def utcnow() -> datetime.datetime:
    """Timestamp corrente in UTC."""
    return datetime.datetime.now(datetime.timezone.utc)


def _timestamp_column(doc: str) -> Mapped[datetime.datetime]:
    return mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        doc=doc,
    )


class UUIDMixin:
    """Primary key UUID generata lato applicazione (uuid4)."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """
    created_at / updated_at gestiti automaticamente.

    created_at ha precisione al microsecondo perché la deduplicazione
    massiva dei movimenti tiene la copia registrata per prima.
    updated_at è l'unica colonna che il flush può toccare su una
    fattura bloccata.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
        doc="Registrazione del record",
    )
    updated_at: Mapped[datetime.datetime] = _timestamp_column("Ultima modifica del record")


@event.listens_for(Session, "before_flush")
def touch_timestamps(session: Session, flush_context, instances) -> None:
    """Aggiorna updated_at sui record modificati e completa i nuovi."""
    now = utcnow()

    for obj in session.new:
        if isinstance(obj, TimestampMixin):
            obj.created_at = obj.created_at or now
            obj.updated_at = now

    for obj in session.dirty:
        if isinstance(obj, TimestampMixin) and session.is_modified(obj, include_collections=False):
            obj.updated_at = now
