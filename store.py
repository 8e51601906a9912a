"""Data access used by the category deduplication routine.

``SQLAlchemyStore`` is the handle passed into the grouper and merge executor.
Reads happen in short-lived sessions; writes only happen through
``run_in_transaction`` which hands a ``CategoryRepository`` bound to a single
session to the unit of work and commits or rolls back as a whole.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Iterable, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, sessionmaker

from database import session_scope
from models import Budget, Category, Transaction

T = TypeVar("T")


class CategoryRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _budget(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if budget is None:
            raise LookupError(f"Budget {budget_id} not found")
        return budget

    def list_budgets(self, category_id: int) -> list[Budget]:
        stmt = (
            select(Budget)
            .where(Budget.category_id == category_id)
            .order_by(Budget.month, Budget.id)
        )
        return list(self.session.scalars(stmt).all())

    def update_budget_amount(self, budget_id: int, amount: Decimal) -> Budget:
        budget = self._budget(budget_id)
        budget.amount = amount
        self.session.flush()
        return budget

    def delete_budget(self, budget_id: int) -> None:
        budget = self._budget(budget_id)
        self.session.delete(budget)
        self.session.flush()

    def reassign_budget_category(self, budget_id: int, category_id: int) -> Budget:
        budget = self._budget(budget_id)
        budget.category_id = category_id
        self.session.flush()
        return budget

    def reassign_transactions_category(
        self, category_ids: Iterable[int], category_id: int
    ) -> int:
        ids = list(category_ids)
        if not ids:
            return 0
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.category_id.in_(ids))
            .values(category_id=category_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def delete_categories(self, category_ids: Iterable[int]) -> int:
        ids = list(category_ids)
        if not ids:
            return 0
        result = self.session.execute(
            delete(Category)
            .where(Category.id.in_(ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class SQLAlchemyStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def list_categories(self) -> list[Category]:
        with self.session_factory() as session:
            stmt = select(Category).order_by(Category.created_at, Category.id)
            return list(session.scalars(stmt).all())

    def run_in_transaction(self, work: Callable[[CategoryRepository], T]) -> T:
        with session_scope(self.session_factory) as session:
            return work(CategoryRepository(session))
