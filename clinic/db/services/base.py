from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar, cast

from sqlalchemy import ColumnExpressionArgument, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic.db.base import Base

T = TypeVar("T", bound=Base)
OrderBy = Optional[List[ColumnExpressionArgument[Any]]]


class BaseService(Generic[T]):
    """
    Repository over a single model.

    Services only flush. Committing or rolling back is left to the
    ``get_or_create_session`` block the caller opened.
    """

    model: Type[T]
    session: AsyncSession

    def __init__(self, session: AsyncSession) -> None:
        if not hasattr(self, "model"):
            raise NotImplementedError(f"{type(self).__name__} has no model")
        self.session = session

    async def add_model(self, new_instance: T) -> T:
        """Stage ``new_instance`` and flush so its primary key is assigned."""
        self.session.add(new_instance)
        await self.session.flush()
        return new_instance

    async def find_one_or_none(self, **filter_by: Any) -> Optional[T]:
        result = await self.session.execute(
            select(self.model).filter_by(**filter_by),
        )
        return result.scalar_one_or_none()

    async def find_all(self, order_by: OrderBy = None, **filter_by: Any) -> Sequence[T]:
        """
        Return every row whose columns equal ``filter_by``.

        Args:
            order_by: Columns to sort by, in order.
            **filter_by: Column-value equality filters.
        """
        query = select(self.model).filter_by(**filter_by)
        if order_by:
            query = query.order_by(*order_by)
        return (await self.session.execute(query)).scalars().all()

    async def find_all_where(
        self,
        *whereclauses: ColumnExpressionArgument[bool],
        order_by: OrderBy = None,
        limit: Optional[int] = None,
    ) -> Sequence[T]:
        """
        Return rows matching arbitrary SQL expressions.

        Args:
            *whereclauses: Expressions combined with AND.
            order_by: Columns to sort by, in order.
            limit: Cap on the number of rows.
        """
        query = select(self.model).where(*whereclauses)
        if order_by:
            query = query.order_by(*order_by)
        if limit:
            query = query.limit(limit)
        return (await self.session.execute(query)).scalars().all()

    async def update_where(
        self,
        *whereclauses: ColumnExpressionArgument[bool],
        **update_data: Any,
    ) -> int:
        """
        Apply ``update_data`` to every row matching ``whereclauses``.

        The guard and the write happen in one statement, so the returned
        row count tells whether the guard still held at write time.
        Instances already loaded in the session are not refreshed.
        """
        result = await self.session.execute(
            update(self.model)
            .where(*whereclauses)
            .values(**update_data)
            .execution_options(synchronize_session=False),
        )
        return cast("int", result.rowcount)  # type: ignore[attr-defined]

    async def update_by_model(self, instance: T, **update_data: Any) -> T:
        """Set attributes on a loaded instance, flush and reload it."""
        for key, value in update_data.items():
            setattr(instance, key, value)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def delete(self, item_id: int) -> None:
        await self.session.execute(
            delete(self.model).where(
                getattr(self.model, "id") == item_id,  # noqa: B009
            ),
        )
