"""
Repositories for the two tables the return desk owns.

Services depend only on the abstract interfaces; the SQLAlchemy
implementations share one AsyncSession so a service can make several writes
and commit them together.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from returndesk.models import ReturnRequest, CarrierShipment
from returndesk.services.errors import AlreadySubmitted, ConcurrentModification

logger = logging.getLogger(__name__)


class ReturnRepository(ABC):
    """Persistence for ReturnRequest aggregates."""

    @abstractmethod
    async def get(self, return_id: str) -> Optional[ReturnRequest]:
        pass

    @abstractmethod
    async def list_for_order(self, order_id: str) -> List[ReturnRequest]:
        pass

    @abstractmethod
    async def list(
        self,
        status: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
        newest_first: bool = True,
    ) -> Tuple[List[ReturnRequest], int]:
        pass

    @abstractmethod
    async def count_by_status(self) -> dict:
        """{status: count} for every status present."""

    @abstractmethod
    async def total_refunded(self) -> int:
        """Sum of total_refund over completed returns."""

    @abstractmethod
    async def add(self, return_request: ReturnRequest) -> ReturnRequest:
        pass

    @abstractmethod
    async def save(self, return_request: ReturnRequest) -> ReturnRequest:
        """
        Write pending changes. Raises ConcurrentModification when the row was
        changed by someone else since it was read.
        """

    @abstractmethod
    async def commit(self) -> None:
        """Make every write since the last commit durable."""


class CarrierShipmentRepository(ABC):
    """Persistence for return-leg carrier shipments."""

    @abstractmethod
    async def get_by_return_id(self, return_id: str) -> Optional[CarrierShipment]:
        pass

    @abstractmethod
    async def add(self, shipment: CarrierShipment) -> CarrierShipment:
        pass

    @abstractmethod
    async def save(self, shipment: CarrierShipment) -> CarrierShipment:
        pass

    @abstractmethod
    async def commit(self) -> None:
        pass


# ==================== SQLALCHEMY ====================

class SqlAlchemyReturnRepository(ReturnRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, return_id: str) -> Optional[ReturnRequest]:
        result = await self.db.execute(
            select(ReturnRequest).where(ReturnRequest.id == return_id)
        )
        return result.scalar_one_or_none()

    async def list_for_order(self, order_id: str) -> List[ReturnRequest]:
        result = await self.db.execute(
            select(ReturnRequest)
            .where(ReturnRequest.order_id == order_id)
            .order_by(ReturnRequest.requested_at.desc())
        )
        return list(result.scalars().all())

    async def list(
        self,
        status: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
        newest_first: bool = True,
    ) -> Tuple[List[ReturnRequest], int]:
        query = select(ReturnRequest)
        count_query = select(func.count(ReturnRequest.id))

        if status:
            query = query.where(ReturnRequest.status == status)
            count_query = count_query.where(ReturnRequest.status == status)
        if order_id:
            query = query.where(ReturnRequest.order_id == order_id)
            count_query = count_query.where(ReturnRequest.order_id == order_id)

        total = await self.db.scalar(count_query) or 0

        order_by = ReturnRequest.requested_at.desc() if newest_first else ReturnRequest.requested_at.asc()
        query = query.order_by(order_by).offset(offset).limit(limit)
        result = await self.db.execute(query)

        return list(result.scalars().all()), total

    async def count_by_status(self) -> dict:
        result = await self.db.execute(
            select(ReturnRequest.status, func.count(ReturnRequest.id))
            .group_by(ReturnRequest.status)
        )
        return {status: count for status, count in result.all()}

    async def total_refunded(self) -> int:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(ReturnRequest.total_refund), 0))
            .where(ReturnRequest.status == "completed")
        )
        return int(total or 0)

    async def add(self, return_request: ReturnRequest) -> ReturnRequest:
        self.db.add(return_request)
        await self.db.flush()
        return return_request

    async def save(self, return_request: ReturnRequest) -> ReturnRequest:
        # Rollback expires the instance; nothing on it may be read afterwards
        return_id = return_request.id
        try:
            await self.db.flush()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"Stale write to return request {return_id}")
            raise ConcurrentModification(
                f"Return request {return_id} was modified concurrently. Reload and retry.",
                {"return_id": return_id},
            ) from e
        return return_request

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise ConcurrentModification(
                "Return request was modified concurrently. Reload and retry."
            ) from e


class SqlAlchemyCarrierShipmentRepository(CarrierShipmentRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_return_id(self, return_id: str) -> Optional[CarrierShipment]:
        result = await self.db.execute(
            select(CarrierShipment).where(CarrierShipment.return_id == return_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def add(self, shipment: CarrierShipment) -> CarrierShipment:
        return_id, order_no = shipment.return_id, shipment.order_no
        self.db.add(shipment)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Duplicate carrier shipment for return {return_id}")
            raise AlreadySubmitted(order_no or "") from e
        return shipment

    async def save(self, shipment: CarrierShipment) -> CarrierShipment:
        await self.db.flush()
        return shipment

    async def commit(self) -> None:
        await self.db.commit()
