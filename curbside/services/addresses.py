"""Address book business logic"""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.db.models import SavedAddress
from curbside.schemas.addresses import AddressCreate
from curbside.services.errors import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class AddressService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_addresses(self, user_id: str) -> list[SavedAddress]:
        """List a user's addresses, default first"""
        result = await self.db.execute(
            select(SavedAddress)
            .where(SavedAddress.user_id == user_id)
            .order_by(SavedAddress.is_default.desc(), SavedAddress.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_address(self, user_id: str, address_data: AddressCreate) -> SavedAddress:
        """Save an address; the first one (or an explicit default) becomes the default"""
        existing = await self.list_addresses(user_id)
        make_default = address_data.is_default or not existing

        try:
            if make_default and existing:
                await self.db.execute(
                    update(SavedAddress)
                    .where(SavedAddress.user_id == user_id)
                    .values(is_default=False)
                    .execution_options(synchronize_session="fetch")
                )

            address = SavedAddress(
                user_id=user_id,
                street=address_data.street,
                apt=address_data.apt or None,
                city=address_data.city,
                state=address_data.state,
                zip=address_data.zip,
                is_default=make_default,
            )
            self.db.add(address)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save address for user {user_id}: {e}")
            raise PersistenceError("Failed to save address") from e

        return address

    async def get_address(self, user_id: str, address_id: UUID) -> SavedAddress:
        result = await self.db.execute(
            select(SavedAddress).where(
                SavedAddress.id == address_id,
                SavedAddress.user_id == user_id,
            )
        )
        address = result.scalar_one_or_none()
        if address is None:
            raise NotFoundError(f"Address {address_id} not found")
        return address

    async def delete_address(self, user_id: str, address_id: UUID) -> None:
        """Delete one of the user's addresses, promoting a new default if needed"""
        address = await self.get_address(user_id, address_id)
        was_default = address.is_default

        try:
            await self.db.delete(address)
            await self.db.flush()

            if was_default:
                remaining = await self.list_addresses(user_id)
                if remaining:
                    remaining[0].is_default = True
                    await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete address {address_id}: {e}")
            raise PersistenceError("Failed to delete address") from e

        logger.info(f"Deleted address {address_id} for user {user_id}")
