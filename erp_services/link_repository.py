"""
Conversion Link Repository - persistence of ConversionLink records.

This repository is responsible for:
- Appending the links a conversion returns
- Loading the links recorded against a source or target document
- Deriving consumed quantity per source line from the stored links

It follows the session convention of the kernel services:
- Accepts a Session from the caller
- Uses session.flush() within the transaction
- Does NOT call session.commit() - caller controls boundaries
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_kernel.domain.documents import ConversionLink, LinkKind
from erp_kernel.logging_config import get_logger
from erp_kernel.models.conversion_link import ConversionLinkModel
from erp_services.conversion import consumed_by_line

logger = get_logger("services.link_repository")


class ConversionLinkRepository:
    """Append-only store of ConversionLinks."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, links: Iterable[ConversionLink]) -> list[ConversionLinkModel]:
        """Persist links and flush.  Rows are immutable once written."""
        models = [ConversionLinkModel.from_domain(link) for link in links]
        self.session.add_all(models)
        self.session.flush()
        logger.info(
            "conversion_links_persisted",
            extra={
                "link_count": len(models),
                "source_document_ids": sorted({m.source_document_id for m in models}),
            },
        )
        return models

    def links_for_source(
        self,
        source_document_id: str,
        kind: LinkKind | None = None,
    ) -> list[ConversionLink]:
        stmt = select(ConversionLinkModel).where(
            ConversionLinkModel.source_document_id == source_document_id
        )
        if kind is not None:
            stmt = stmt.where(ConversionLinkModel.kind == kind.value)
        stmt = stmt.order_by(ConversionLinkModel.created_at, ConversionLinkModel.source_line_id)
        return [row.to_domain() for row in self.session.scalars(stmt)]

    def links_for_target(self, target_document_id: str) -> list[ConversionLink]:
        stmt = (
            select(ConversionLinkModel)
            .where(ConversionLinkModel.target_document_id == target_document_id)
            .order_by(ConversionLinkModel.created_at)
        )
        return [row.to_domain() for row in self.session.scalars(stmt)]

    def consumed_quantity(
        self,
        source_document_id: str,
        kind: LinkKind,
        exclude_target_ids: Collection[str] = (),
    ) -> dict[str, Decimal]:
        """Consumed measure per source line for one link kind."""
        return consumed_by_line(
            self.links_for_source(source_document_id, kind),
            source_document_id,
            kind,
            exclude_target_ids,
        )
