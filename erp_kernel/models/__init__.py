"""
Module: erp_kernel.models
Responsibility: SQLAlchemy ORM models.  Importing this package registers
    every table on ``erp_kernel.db.base.Base.metadata``.
"""

from erp_kernel.models.conversion_link import ConversionLinkModel

__all__ = ["ConversionLinkModel"]
