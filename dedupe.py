"""Find categories created with colliding identity and merge them.

Two categories are duplicates when they share an owner and their names and
colors match case-insensitively (names are also trimmed). The earliest created
member of a group survives; the budgets and transactions of every later member
are folded into it and the later members are deleted. Each group is merged in
its own transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from models import Budget, Category
from store import CategoryRepository, SQLAlchemyStore

logger = logging.getLogger(__name__)


class MergeError(RuntimeError):
    pass


class BudgetMonthConflict(MergeError):
    def __init__(self, category_id: int, month: str) -> None:
        super().__init__(
            f"Category {category_id} has more than one budget for {month}; "
            "refusing to pick a merge target"
        )
        self.category_id = category_id
        self.month = month


@dataclass(frozen=True)
class CategoryIdentity:
    owner: str
    name: str
    color: str

    @classmethod
    def of(cls, category: Category) -> "CategoryIdentity":
        return cls(
            owner=category.user_id or "",
            name=category.name.strip().lower(),
            color=(category.color or "").lower(),
        )


@dataclass(frozen=True)
class DuplicateGroup:
    identity: CategoryIdentity
    name: str
    member_ids: tuple[int, ...]

    @property
    def owner(self) -> str:
        return self.identity.owner

    @property
    def survivor_id(self) -> int:
        return self.member_ids[0]

    @property
    def removal_ids(self) -> tuple[int, ...]:
        return self.member_ids[1:]


@dataclass
class MergeResult:
    group: DuplicateGroup
    budgets_folded: int = 0
    budgets_adopted: int = 0
    transactions_moved: int = 0
    categories_deleted: int = 0

    @property
    def survivor_id(self) -> int:
        return self.group.survivor_id

    @property
    def removed_ids(self) -> tuple[int, ...]:
        return self.group.removal_ids

    def summary(self) -> str:
        return (
            f"Merged {len(self.removed_ids)} duplicates into {self.survivor_id} "
            f"for user {self.group.owner} ({self.group.name})."
        )


@dataclass
class GroupFailure:
    group: DuplicateGroup
    error: Exception

    def summary(self) -> str:
        return (
            f"Failed to merge {len(self.group.removal_ids)} duplicates into "
            f"{self.group.survivor_id} for user {self.group.owner} "
            f"({self.group.name}): {self.error}"
        )


@dataclass
class DedupeReport:
    groups: list[DuplicateGroup] = field(default_factory=list)
    merged: list[MergeResult] = field(default_factory=list)
    failed: list[GroupFailure] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    def lines(self) -> list[str]:
        if not self.groups:
            return ["No duplicate categories found."]
        if self.dry_run:
            return [
                f"Would merge {len(g.removal_ids)} duplicates into {g.survivor_id} "
                f"for user {g.owner} ({g.name})."
                for g in self.groups
            ]
        return [r.summary() for r in self.merged] + [f.summary() for f in self.failed]


def group_duplicates(categories: Iterable[Category]) -> list[DuplicateGroup]:
    ordered = sorted(categories, key=lambda c: (c.created_at, c.id))
    members: dict[CategoryIdentity, list[Category]] = {}
    for category in ordered:
        members.setdefault(CategoryIdentity.of(category), []).append(category)

    return [
        DuplicateGroup(
            identity=identity,
            name=cats[0].name,
            member_ids=tuple(c.id for c in cats),
        )
        for identity, cats in members.items()
        if len(cats) > 1
    ]


class GroupMerge:
    """Folds one duplicate group into its survivor.

    The steps run in order against a repository bound to a single
    transaction; none of them commits.
    """

    steps = ("fold_budgets", "repoint_transactions", "delete_removals")

    def __init__(self, group: DuplicateGroup, repo: CategoryRepository) -> None:
        self.group = group
        self.repo = repo
        self.result = MergeResult(group=group)

    def run(self) -> MergeResult:
        for step in self.steps:
            getattr(self, step)()
        return self.result

    def _survivor_budgets(self) -> dict[str, Budget]:
        by_month: dict[str, Budget] = {}
        for budget in self.repo.list_budgets(self.group.survivor_id):
            if budget.month in by_month:
                raise BudgetMonthConflict(self.group.survivor_id, budget.month)
            by_month[budget.month] = budget
        return by_month

    def fold_budgets(self) -> None:
        survivor_id = self.group.survivor_id
        by_month = self._survivor_budgets()

        for removal_id in self.group.removal_ids:
            for budget in self.repo.list_budgets(removal_id):
                target = by_month.get(budget.month)
                if target is not None:
                    total = Decimal(target.amount) + Decimal(budget.amount)
                    by_month[budget.month] = self.repo.update_budget_amount(
                        target.id, total
                    )
                    self.repo.delete_budget(budget.id)
                    self.result.budgets_folded += 1
                else:
                    adopted = self.repo.reassign_budget_category(budget.id, survivor_id)
                    if adopted.category_id != survivor_id:
                        raise MergeError(
                            f"Budget {budget.id} was not moved to {survivor_id}"
                        )
                    by_month[adopted.month] = adopted
                    self.result.budgets_adopted += 1

    def repoint_transactions(self) -> None:
        self.result.transactions_moved = self.repo.reassign_transactions_category(
            self.group.removal_ids, self.group.survivor_id
        )

    def delete_removals(self) -> None:
        self.result.categories_deleted = self.repo.delete_categories(
            self.group.removal_ids
        )


def merge_group(store: SQLAlchemyStore, group: DuplicateGroup) -> MergeResult:
    result = store.run_in_transaction(lambda repo: GroupMerge(group, repo).run())
    logger.info(result.summary())
    return result


def find_duplicates(store: SQLAlchemyStore) -> list[DuplicateGroup]:
    return group_duplicates(store.list_categories())


def dedupe_categories(store: SQLAlchemyStore, *, dry_run: bool = False) -> DedupeReport:
    report = DedupeReport(groups=find_duplicates(store), dry_run=dry_run)
    if not report.groups:
        logger.info("No duplicate categories found.")
        return report
    if dry_run:
        logger.info(f"dedupe_dry_run: groups={len(report.groups)}")
        return report

    for group in report.groups:
        try:
            report.merged.append(merge_group(store, group))
        except Exception as exc:
            logger.exception(
                f"dedupe_group_failed: survivor={group.survivor_id} "
                f"user={group.owner} name={group.name!r}"
            )
            report.failed.append(GroupFailure(group=group, error=exc))

    logger.info(
        f"dedupe_done: merged={len(report.merged)} failed={len(report.failed)}"
    )
    return report
