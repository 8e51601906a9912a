import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from sqlalchemy.orm import Session

from config import get_log_level
from database import SessionLocal
from dedupe import DedupeReport, DuplicateGroup, dedupe_categories
from models import TransactionType
from schemas import (
    BudgetIn,
    BudgetOut,
    CategoryIn,
    CategoryOut,
    DedupeReportOut,
    DuplicateGroupOut,
    TransactionIn,
    TransactionOut,
)
from services import BudgetProgress, BudgetService, CategoryService, TransactionService
from store import SQLAlchemyStore

logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)

app = FastAPI(title="Budget")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store() -> SQLAlchemyStore:
    return SQLAlchemyStore(SessionLocal)


def current_user_id(x_user_id: str = Header(...)) -> str:
    return x_user_id


def _not_found(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _budget_out(progress: BudgetProgress) -> BudgetOut:
    out = BudgetOut.model_validate(progress.budget)
    out.spent = progress.spent
    out.remaining = progress.remaining
    out.percentage = progress.percentage
    return out


def _group_out(group: DuplicateGroup) -> DuplicateGroupOut:
    return DuplicateGroupOut(
        owner=group.owner,
        name=group.name,
        survivor_id=group.survivor_id,
        removal_ids=list(group.removal_ids),
    )


def _report_out(report: DedupeReport) -> DedupeReportOut:
    return DedupeReportOut(
        dry_run=report.dry_run,
        groups=[_group_out(g) for g in report.groups],
        merged=len(report.merged),
        failed=len(report.failed),
        lines=report.lines(),
    )


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return CategoryService(db, user_id).list_all()


@app.get("/api/categories/duplicates", response_model=list[DuplicateGroupOut])
def list_duplicate_categories(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return [_group_out(g) for g in CategoryService(db, user_id).duplicates()]


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).get(category_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    return CategoryService(db, user_id).create(data)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return CategoryService(db, user_id).update(category_id, data)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    service = CategoryService(db, user_id)
    try:
        service.get(category_id)
    except ValueError as exc:
        raise _not_found(exc) from exc
    try:
        service.delete(category_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"message": "Category deleted successfully"}


@app.get("/api/budgets", response_model=list[BudgetOut])
def list_budgets(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        budgets = BudgetService(db, user_id).list(month)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [_budget_out(p) for p in budgets]


@app.get("/api/budgets/{budget_id}", response_model=BudgetOut)
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    service = BudgetService(db, user_id)
    try:
        budget = service.get(budget_id)
    except ValueError as exc:
        raise _not_found(exc) from exc
    return _budget_out(service.progress(budget))


@app.post("/api/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    service = BudgetService(db, user_id)
    try:
        budget = service.create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _budget_out(service.progress(budget))


@app.put("/api/budgets/{budget_id}", response_model=BudgetOut)
def update_budget(
    budget_id: int,
    data: BudgetIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    service = BudgetService(db, user_id)
    try:
        service.get(budget_id)
    except ValueError as exc:
        raise _not_found(exc) from exc
    try:
        budget = service.update(budget_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _budget_out(service.progress(budget))


@app.delete("/api/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        BudgetService(db, user_id).delete(budget_id)
    except ValueError as exc:
        raise _not_found(exc) from exc
    return {"message": "Budget deleted successfully"}


@app.get("/api/transactions", response_model=list[TransactionOut])
def list_transactions(
    month: Optional[str] = None,
    category_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).list(month, category_id, type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).get(transaction_id)
    except ValueError as exc:
        raise _not_found(exc) from exc


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return TransactionService(db, user_id).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int,
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    service = TransactionService(db, user_id)
    try:
        service.get(transaction_id)
    except ValueError as exc:
        raise _not_found(exc) from exc
    try:
        return service.update(transaction_id, data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except ValueError as exc:
        raise _not_found(exc) from exc
    return {"message": "Transaction deleted successfully"}


@app.get("/api/admin/categories/duplicates", response_model=DedupeReportOut)
def preview_duplicate_categories(store: SQLAlchemyStore = Depends(get_store)):
    return _report_out(dedupe_categories(store, dry_run=True))


@app.post("/api/admin/categories/dedupe", response_model=DedupeReportOut)
def merge_duplicate_categories(store: SQLAlchemyStore = Depends(get_store)):
    report = dedupe_categories(store)
    logger.info(
        f"admin_dedupe: merged={len(report.merged)} failed={len(report.failed)}"
    )
    return _report_out(report)
