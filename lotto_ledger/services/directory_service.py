"""
Active-entity directory.

Read-only view of the active banks, windows and sellers together with their
parent links. Used by carry-forward (all active entities at once) and by the
monthly closing engine (paged).
"""
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lotto_ledger.models.hierarchy import Bank, Window, Seller, Dimension
from lotto_ledger.schemas.monthly_closing import EntityRefs


class DirectoryService:
    """Lists active hierarchy entities as (entity_id, EntityRefs) pairs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _page(query, offset: int, limit: Optional[int]):
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query

    async def list_active_banks(
        self, offset: int = 0, limit: Optional[int] = None
    ) -> List[Tuple[UUID, EntityRefs]]:
        query = select(Bank.id).where(Bank.is_active == True).order_by(Bank.id)  # noqa: E712
        result = await self.db.execute(self._page(query, offset, limit))
        return [(bank_id, EntityRefs(bank_id=bank_id)) for bank_id in result.scalars().all()]

    async def list_active_windows(
        self, offset: int = 0, limit: Optional[int] = None
    ) -> List[Tuple[UUID, EntityRefs]]:
        query = (
            select(Window.id, Window.bank_id)
            .where(Window.is_active == True)  # noqa: E712
            .order_by(Window.id)
        )
        result = await self.db.execute(self._page(query, offset, limit))
        return [
            (row.id, EntityRefs(bank_id=row.bank_id, window_id=row.id))
            for row in result.all()
        ]

    async def list_active_sellers(
        self, offset: int = 0, limit: Optional[int] = None
    ) -> List[Tuple[UUID, EntityRefs]]:
        """Sellers with their window and bank (bank is None for a seller without window)."""
        query = (
            select(Seller.id, Seller.window_id, Window.bank_id)
            .outerjoin(Window, Seller.window_id == Window.id)
            .where(Seller.is_active == True)  # noqa: E712
            .order_by(Seller.id)
        )
        result = await self.db.execute(self._page(query, offset, limit))
        return [
            (row.id, EntityRefs(bank_id=row.bank_id, window_id=row.window_id, seller_id=row.id))
            for row in result.all()
        ]

    async def list_active(
        self, dimension: Dimension, offset: int = 0, limit: Optional[int] = None
    ) -> List[Tuple[UUID, EntityRefs]]:
        dimension = Dimension(dimension)
        if dimension == Dimension.BANK:
            return await self.list_active_banks(offset, limit)
        if dimension == Dimension.WINDOW:
            return await self.list_active_windows(offset, limit)
        return await self.list_active_sellers(offset, limit)
