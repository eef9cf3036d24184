"""Unit of work for database transactions."""

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork:
    """Unit of work for database transactions.

    Usage:
    -----
    ```python

    await crud.account.create(db, obj_in=obj_in)  # commits automatically

    async with UnitOfWork(db) as uow:
        await repository.apply_update(db, account_id, updates, uow=uow)
        await crud.billing_event.create(db, obj_in=event_in, uow=uow)

    # Both writes are committed together, or rolled back together on error.
    ```

    """

    def __init__(self, session: AsyncSession):
        """Initialize the UnitOfWork with a database session.

        Args:
        ----
            session (AsyncSession): The database session.

        """
        self.session = session
        self._committed = False
        self._rolledback = False

    @property
    def committed(self) -> bool:
        """Whether the transaction has been committed."""
        return self._committed

    async def commit(self) -> None:
        """Commit the transaction.

        Does nothing once the transaction has been committed or rolled back.
        """
        if not self._committed and not self._rolledback:
            await self.session.commit()
            self._committed = True

    async def rollback(self) -> None:
        """Rollback the transaction.

        Does nothing once the transaction has been committed or rolled back.
        """
        if not self._committed and not self._rolledback:
            await self.session.rollback()
            self._rolledback = True

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Commit on clean exit, roll back when an exception escapes the block."""
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
