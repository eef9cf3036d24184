"""CRUD operations for accounts."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from subsync import schemas
from subsync.crud._base import CRUDBase
from subsync.db.unit_of_work import UnitOfWork
from subsync.models import Account, AccountSubscription


class CRUDAccount(CRUDBase[Account, schemas.AccountCreate, schemas.AccountUpdate]):
    """CRUD operations for accounts."""

    async def get_by_account_id(self, db: AsyncSession, *, account_id: str) -> Optional[Account]:
        """Get an account by its opaque account id.

        Args:
            db: Database session
            account_id: Account id issued by the identity layer

        Returns:
            Account or None
        """
        result = await db.execute(select(Account).where(Account.account_id == account_id))
        return result.scalar_one_or_none()

    async def create_with_subscription(
        self,
        db: AsyncSession,
        *,
        obj_in: schemas.AccountCreate,
        uow: Optional[UnitOfWork] = None,
    ) -> Account:
        """Create an account together with its empty subscription record.

        Args:
            db: Database session
            obj_in: Account to create
            uow: Unit of work for transaction control

        Returns:
            The created account
        """
        account = Account(**obj_in.model_dump())
        db.add(account)
        db.add(AccountSubscription(account_id=obj_in.account_id, status="none"))

        if uow is None:
            await db.commit()
            await db.refresh(account)
        else:
            await db.flush()

        return account


account = CRUDAccount(Account)
