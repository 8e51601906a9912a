from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Category, TransactionType
from schemas import BudgetIn, CategoryIn, TransactionIn
from services import BudgetService, CategoryService, TransactionService

JAN_1 = datetime(2025, 1, 1)


def test_list_all_shows_each_duplicate_identity_once() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        session.add_all(
            [
                Category(user_id="u1", name="Food", color="#fff", created_at=JAN_1),
                Category(
                    user_id="u1",
                    name="food ",
                    color="#FFF",
                    created_at=JAN_1 + timedelta(days=1),
                ),
                Category(user_id="u1", name="Rent", created_at=JAN_1),
                Category(user_id="u2", name="Food", color="#fff", created_at=JAN_1),
            ]
        )
        session.commit()

        categories = CategoryService(session, "u1").list_all()
        assert [c.name for c in categories] == ["Food", "Rent"]

        (group,) = CategoryService(session, "u1").duplicates()
        assert group.owner == "u1"
        assert len(group.member_ids) == 2
        assert CategoryService(session, "u2").duplicates() == []


def test_categories_are_scoped_to_their_owner() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        mine = CategoryService(session, "u1").create(
            CategoryIn(name=" Travel ", color="#00f")
        )
        assert mine.name == "Travel"

        with pytest.raises(ValueError, match="not found"):
            CategoryService(session, "u2").get(mine.id)

        renamed = CategoryService(session, "u1").update(
            mine.id, CategoryIn(name="Trips")
        )
        assert renamed.name == "Trips"
        assert renamed.color is None


def test_category_in_use_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, "u1")
        used = categories.create(CategoryIn(name="Food"))
        unused = categories.create(CategoryIn(name="Spare"))
        BudgetService(session, "u1").create(
            BudgetIn(month="2025-01", amount=Decimal("100"), category_id=used.id)
        )

        with pytest.raises(ValueError, match="used by"):
            categories.delete(used.id)
        categories.delete(unused.id)
        assert [c.name for c in categories.list_all()] == ["Food"]


def test_budget_progress_sums_expenses_of_the_month() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, "u1").create(CategoryIn(name="Food"))
        budgets = BudgetService(session, "u1")
        budgets.create(
            BudgetIn(month="2025-01", amount=Decimal("200"), category_id=food.id)
        )

        txns = TransactionService(session, "u1")
        for day, amount, kind in [
            (date(2025, 1, 3), "50.25", TransactionType.expense),
            (date(2025, 1, 31), "49.75", TransactionType.expense),
            (date(2025, 1, 15), "500", TransactionType.income),
            (date(2025, 2, 1), "70", TransactionType.expense),
        ]:
            txns.create(
                TransactionIn(
                    type=kind, amount=Decimal(amount), date=day, category_id=food.id
                )
            )

        (progress,) = budgets.list("2025-01")
        assert progress.spent == Decimal("100")
        assert progress.remaining == Decimal("100")
        assert progress.percentage == 50
        assert budgets.list("2025-02") == []
        assert len(txns.list(month="2025-01")) == 3


def test_second_budget_for_same_category_and_month_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, "u1").create(CategoryIn(name="Food"))
        budgets = BudgetService(session, "u1")
        first = budgets.create(
            BudgetIn(month="2025-01", amount=Decimal("10"), category_id=food.id)
        )

        with pytest.raises(ValueError, match="already exists"):
            budgets.create(
                BudgetIn(month="2025-01", amount=Decimal("5"), category_id=food.id)
            )

        updated = budgets.update(
            first.id,
            BudgetIn(month="2025-01", amount=Decimal("12"), category_id=food.id),
        )
        assert updated.amount == Decimal("12")


def test_invalid_month_is_rejected() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValueError, match="Invalid month"):
            BudgetService(session, "u1").list("2025-13")


def test_budget_percentage_rounds_half_up() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        food = CategoryService(session, "u1").create(CategoryIn(name="Food"))
        budgets = BudgetService(session, "u1")
        budget = budgets.create(
            BudgetIn(month="2025-01", amount=Decimal("8"), category_id=food.id)
        )
        TransactionService(session, "u1").create(
            TransactionIn(
                type=TransactionType.expense,
                amount=Decimal("1.00"),
                date=date(2025, 1, 10),
                category_id=food.id,
            )
        )

        progress = budgets.progress(budget)
        assert progress.spent == Decimal("1.00")
        assert progress.remaining == Decimal("7.00")
        assert progress.percentage == 13


def test_transaction_update_and_type_filter() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        categories = CategoryService(session, "u1")
        food = categories.create(CategoryIn(name="Food"))
        salary = categories.create(CategoryIn(name="Salary"))
        foreign = CategoryService(session, "u2").create(CategoryIn(name="Other"))

        txns = TransactionService(session, "u1")
        lunch = txns.create(
            TransactionIn(
                type=TransactionType.expense,
                amount=Decimal("12.50"),
                date=date(2025, 1, 5),
                category_id=food.id,
            )
        )
        txns.create(
            TransactionIn(
                type=TransactionType.income,
                amount=Decimal("3000"),
                date=date(2025, 1, 1),
                category_id=salary.id,
            )
        )

        assert [t.id for t in txns.list(type=TransactionType.expense)] == [lunch.id]
        assert len(txns.list(type=TransactionType.income)) == 1

        updated = txns.update(
            lunch.id,
            TransactionIn(
                type=TransactionType.income,
                amount=Decimal("15"),
                date=date(2025, 2, 1),
                category_id=salary.id,
                merchant="Refund",
            ),
        )
        assert updated.amount == Decimal("15")
        assert updated.category_id == salary.id
        assert updated.merchant == "Refund"
        assert txns.list(type=TransactionType.expense) == []
        assert len(txns.list(month="2025-02", type=TransactionType.income)) == 1

        with pytest.raises(ValueError, match="not found"):
            txns.update(
                lunch.id,
                TransactionIn(
                    type=TransactionType.expense,
                    amount=Decimal("1"),
                    date=date(2025, 2, 1),
                    category_id=foreign.id,
                ),
            )
        with pytest.raises(ValueError, match="Transaction not found"):
            TransactionService(session, "u2").update(
                lunch.id,
                TransactionIn(
                    type=TransactionType.expense,
                    amount=Decimal("1"),
                    date=date(2025, 2, 1),
                    category_id=foreign.id,
                ),
            )
