"""
Module: erp_kernel.models.conversion_link
Responsibility: ORM persistence for conversion links -- the record of how
    much of a source document line a derived document consumed.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ value objects and exceptions.py only.

Invariants enforced:
    - Links are immutable after creation (ORM before_update/before_delete
      listeners).  No UPDATE, no DELETE.  A cancelled target releases
      its consumption because readers exclude cancelled targets when
      summing links.
    - Exactly one of quantity / amount is stored (enforced by the domain
      ConversionLink on the way in and out).

Failure modes:
    - ImmutabilityViolationError on UPDATE or DELETE attempt.

Audit relevance:
    Remaining balances on every source document are derived from these rows.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import Base
from erp_kernel.domain.documents import ConversionLink, LinkKind
from erp_kernel.domain.values import Money
from erp_kernel.exceptions import ImmutabilityViolationError


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConversionLinkModel(Base):
    """
    Persistent storage for conversion links.

    Contract:
        Once INSERTed, a row is immutable -- no UPDATE, no DELETE.

    Guarantees:
        - ``from_domain`` / ``to_domain`` round-trip every field.
        - ORM listeners raise ImmutabilityViolationError on mutation.
    """

    __tablename__ = "conversion_links"

    __table_args__ = (
        Index("idx_conversion_link_source", "source_document_id", "source_line_id"),
        Index("idx_conversion_link_target", "target_document_id"),
        Index("idx_conversion_link_kind_source", "kind", "source_document_id"),
    )

    kind: Mapped[str] = mapped_column(String(50), nullable=False)

    source_document_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_line_id: Mapped[str] = mapped_column(String(64), nullable=False)

    target_document_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_line_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Quantity links leave the amount columns empty and vice versa.
    quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    def __repr__(self) -> str:
        measure = self.quantity if self.quantity is not None else f"{self.amount} {self.currency}"
        return (
            f"<ConversionLink {self.kind}: "
            f"{self.source_document_id}/{self.source_line_id} -> "
            f"{self.target_document_id} ({measure})>"
        )

    @classmethod
    def from_domain(cls, link: ConversionLink) -> ConversionLinkModel:
        """Create ORM model from domain object, ready for session.add()."""
        return cls(
            kind=link.kind.value,
            source_document_id=link.source_document_id,
            source_line_id=link.source_line_id,
            target_document_id=link.target_document_id,
            target_line_id=link.target_line_id,
            quantity=link.quantity,
            amount=link.amount.amount if link.amount is not None else None,
            currency=link.amount.currency.code if link.amount is not None else None,
        )

    def to_domain(self) -> ConversionLink:
        """
        Convert ORM model to domain object.

        Raises: ValueError if the stored kind is not a LinkKind member.
        """
        amount = None
        if self.amount is not None:
            assert self.currency is not None
            amount = Money.of(Decimal(self.amount), self.currency)
        return ConversionLink(
            kind=LinkKind(self.kind),
            source_document_id=self.source_document_id,
            source_line_id=self.source_line_id,
            target_document_id=self.target_document_id,
            target_line_id=self.target_line_id,
            quantity=Decimal(self.quantity) if self.quantity is not None else None,
            amount=amount,
        )


# =============================================================================
# ORM-Level Immutability Protection
# =============================================================================


@event.listens_for(ConversionLinkModel, "before_update")
def prevent_link_update(mapper, connection, target):
    """Raises ImmutabilityViolationError always."""
    raise ImmutabilityViolationError(
        entity_type="ConversionLink",
        entity_id=str(target.id),
        reason="conversion links are immutable - cannot modify link",
    )


@event.listens_for(ConversionLinkModel, "before_delete")
def prevent_link_delete(mapper, connection, target):
    """Raises ImmutabilityViolationError always."""
    raise ImmutabilityViolationError(
        entity_type="ConversionLink",
        entity_id=str(target.id),
        reason="conversion links are immutable - cannot delete link",
    )
