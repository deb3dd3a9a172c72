"""Address book API endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from curbside.api.dependencies import get_requester_id
from curbside.db.database import get_db
from curbside.schemas.addresses import AddressCreate, AddressResponse
from curbside.services.addresses import AddressService
from curbside.services.errors import PortalError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/addresses", response_model=list[AddressResponse])
async def list_addresses(
    user_id: str = Depends(get_requester_id),
    db: AsyncSession = Depends(get_db),
) -> list[AddressResponse]:
    """List the caller's saved addresses, default first"""
    addresses = await AddressService(db).list_addresses(user_id)
    return [AddressResponse.model_validate(address) for address in addresses]


@router.post("/addresses", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_address(
    address_data: AddressCreate,
    user_id: str = Depends(get_requester_id),
    db: AsyncSession = Depends(get_db),
) -> AddressResponse:
    try:
        address = await AddressService(db).create_address(user_id, address_data)
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error saving address: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save address",
        )

    return AddressResponse.model_validate(address)


@router.delete("/addresses/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: UUID,
    user_id: str = Depends(get_requester_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        await AddressService(db).delete_address(user_id, address_id)
        await db.commit()
    except PortalError:
        await db.rollback()
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Error deleting address {address_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete address",
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
