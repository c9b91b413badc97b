"""Repository for ContactPoint operations."""

from collections.abc import Iterable
from uuid import uuid4

from sqlalchemy import select

from signal_engine.db.repositories.base import BaseRepository
from signal_engine.models.contact_point import ContactPoint


class ContactPointRepository(BaseRepository):
    """Repository for contact point database operations."""

    async def create(self, name: str, channel: str, destination: str) -> ContactPoint:
        contact_point = ContactPoint(id=str(uuid4()), name=name, channel=channel, destination=destination)
        self.session.add(contact_point)
        await self.session.commit()
        await self.session.refresh(contact_point)
        return contact_point

    async def list_all(self) -> list[ContactPoint]:
        result = await self.session.execute(select(ContactPoint).order_by(ContactPoint.created_at))
        return list(result.scalars().all())

    async def get_many(self, ids: Iterable[str]) -> list[ContactPoint]:
        """Get contact points by ID, preserving the requested order."""
        ids = list(ids)
        if not ids:
            return []
        result = await self.session.execute(select(ContactPoint).where(ContactPoint.id.in_(ids)))
        by_id = {cp.id: cp for cp in result.scalars().all()}
        return [by_id[cp_id] for cp_id in ids if cp_id in by_id]
