from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dedupe import CategoryIdentity, DuplicateGroup, group_duplicates
from models import Budget, Category, Transaction, TransactionType
from schemas import BudgetIn, CategoryIn, TransactionIn


def _month_start(month: str) -> date:
    year, num = (int(part) for part in month.split("-"))
    return date(year, num, 1)


def _month_end(month: str) -> date:
    start = _month_start(month)
    if start.month == 12:
        return date(start.year + 1, 1, 1) - date.resolution
    return date(start.year, start.month + 1, 1) - date.resolution


def _validate_month(month: str) -> None:
    try:
        _month_start(month)
    except ValueError as exc:
        raise ValueError(f"Invalid month: {month}") from exc


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    spent: Decimal

    @property
    def remaining(self) -> Decimal:
        return Decimal(self.budget.amount) - self.spent

    @property
    def percentage(self) -> int:
        amount = Decimal(self.budget.amount)
        if amount <= 0:
            return 0
        ratio = self.spent / amount * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id

    def _owned(self):
        return select(Category).where(Category.user_id == self.user_id)

    def list_all(self) -> list[Category]:
        """Categories of the user, each duplicate identity shown once."""
        stmt = self._owned().order_by(Category.name, Category.created_at, Category.id)
        unique: dict[CategoryIdentity, Category] = {}
        for category in self.session.scalars(stmt):
            unique.setdefault(CategoryIdentity.of(category), category)
        return list(unique.values())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            color=data.color,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        category.name = data.name.strip()
        category.color = data.color
        self.session.commit()
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = self.session.scalar(
            select(func.count(Budget.id)).where(Budget.category_id == category_id)
        ) or self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category_id
            )
        )
        if in_use:
            raise ValueError("Category is used by budgets or transactions")
        self.session.delete(category)
        self.session.commit()

    def duplicates(self) -> list[DuplicateGroup]:
        return group_duplicates(self.session.scalars(self._owned()).all())


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id

    def _spent(self, budget: Budget) -> Decimal:
        total = self.session.scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == budget.category_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(
                    _month_start(budget.month), _month_end(budget.month)
                ),
            )
        )
        return Decimal(str(total or 0)).quantize(Decimal("0.01"))

    def _category(self, category_id: int) -> Category:
        return CategoryService(self.session, self.user_id).get(category_id)

    def progress(self, budget: Budget) -> BudgetProgress:
        return BudgetProgress(budget=budget, spent=self._spent(budget))

    def list(self, month: Optional[str] = None) -> list[BudgetProgress]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.month.desc(), Budget.id)
        )
        if month:
            _validate_month(month)
            stmt = stmt.where(Budget.month == month)
        return [self.progress(b) for b in self.session.scalars(stmt)]

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def _ensure_free_month(
        self, category_id: int, month: str, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Budget.id).where(
            Budget.category_id == category_id, Budget.month == month
        )
        if exclude_id is not None:
            stmt = stmt.where(Budget.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise ValueError("A budget for this category and month already exists")

    def create(self, data: BudgetIn) -> Budget:
        _validate_month(data.month)
        self._category(data.category_id)
        self._ensure_free_month(data.category_id, data.month)
        budget = Budget(
            user_id=self.user_id,
            name=data.name,
            month=data.month,
            amount=data.amount,
            category_id=data.category_id,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetIn) -> Budget:
        budget = self.get(budget_id)
        _validate_month(data.month)
        self._category(data.category_id)
        self._ensure_free_month(data.category_id, data.month, exclude_id=budget.id)
        budget.name = data.name
        budget.month = data.month
        budget.amount = data.amount
        budget.category_id = data.category_id
        self.session.commit()
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id

    def list(
        self,
        month: Optional[str] = None,
        category_id: Optional[int] = None,
        type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if month:
            _validate_month(month)
            stmt = stmt.where(
                Transaction.date.between(_month_start(month), _month_end(month))
            )
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        if type is not None:
            stmt = stmt.where(Transaction.type == type)
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        CategoryService(self.session, self.user_id).get(data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount=data.amount,
            date=data.date,
            category_id=data.category_id,
            merchant=data.merchant,
            note=data.note,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        CategoryService(self.session, self.user_id).get(data.category_id)
        txn.type = data.type
        txn.amount = data.amount
        txn.date = data.date
        txn.category_id = data.category_id
        txn.merchant = data.merchant
        txn.note = data.note
        self.session.commit()
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
