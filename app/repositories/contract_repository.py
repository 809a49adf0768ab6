"""
Contract repository - read access to contracts for analysis.
"""

from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.contract import Contract


class ContractRepository:
    """Repository for Contract database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, contract_id: UUID) -> Optional[Contract]:
        result = await self.db.execute(
            select(Contract).where(Contract.id == contract_id)
        )
        return result.scalar_one_or_none()

    async def get_visible(
        self,
        contract_id: UUID,
        user_id: UUID,
        organization_id: Optional[UUID] = None,
    ) -> Optional[Contract]:
        """Get a non-deleted contract owned by the user or shared with their organization."""
        owner_filter = Contract.user_id == user_id
        if organization_id:
            owner_filter = or_(owner_filter, Contract.organization_id == organization_id)
        result = await self.db.execute(
            select(Contract).where(
                Contract.id == contract_id,
                Contract.deleted_at.is_(None),
                owner_filter,
            )
        )
        return result.scalar_one_or_none()

    async def get_owned(self, contract_ids: Sequence[UUID], user_id: UUID) -> List[Contract]:
        """Return the subset of contracts the user owns and has not deleted."""
        if not contract_ids:
            return []
        result = await self.db.execute(
            select(Contract).where(
                Contract.id.in_(list(contract_ids)),
                Contract.user_id == user_id,
                Contract.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def get_file_names(self, contract_ids: Sequence[UUID]) -> Dict[UUID, str]:
        ids = list({cid for cid in contract_ids if cid})
        if not ids:
            return {}
        result = await self.db.execute(
            select(Contract.id, Contract.file_name).where(Contract.id.in_(ids))
        )
        return {row[0]: row[1] for row in result.all()}
