from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=9)


class BudgetIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    category_id: int


class TransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    date: date
    category_id: int
    merchant: Optional[str] = Field(default=None, max_length=120)
    note: Optional[str] = Field(default=None, max_length=500)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: Optional[str]


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str]
    month: str
    amount: Decimal
    category_id: int
    spent: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")
    percentage: int = 0


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: Decimal
    date: date
    category_id: int
    merchant: Optional[str]
    note: Optional[str]


class DuplicateGroupOut(BaseModel):
    owner: str
    name: str
    survivor_id: int
    removal_ids: list[int]


class DedupeReportOut(BaseModel):
    dry_run: bool
    groups: list[DuplicateGroupOut]
    merged: int
    failed: int
    lines: list[str]
