"""Budget ledger kept on the collaboration document.

``budget.spent`` is recomputed from the item list inside the same transaction that edits
the list, so it always equals the sum of the amounts currently present.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from app.core.config import settings as default_settings
from app.core.exceptions import ResourceNotFoundException, ValidationException
from app.core.store import DocumentStore, Transaction
from app.modules.collaboration.models import (
    COLLABORATIONS,
    Budget,
    Collaboration,
    CostItem,
    CostStatus,
    MixingCosts,
    StudioCosts,
    utcnow,
)
from app.modules.collaboration.schemas import BudgetSummary, CostItemCreate

from .common import load_collaboration, require_creator

logger = logging.getLogger(__name__)


def _recompute(budget: Budget) -> Budget:
    budget.spent = sum(item.amount for item in budget.items)
    return budget


def summarize(collaboration_id: str, budget: Budget) -> BudgetSummary:
    return BudgetSummary(
        collaboration_id=collaboration_id,
        total=budget.total,
        spent=budget.spent,
        remaining=budget.remaining,
        currency=budget.currency,
        progress_percent=budget.progress_percent,
        item_count=len(budget.items),
        over_budget=budget.total < budget.spent,
    )


class BudgetLedger:
    def __init__(self, store: DocumentStore, cfg=None):
        self.store = store
        self.settings = cfg or default_settings

    def _budget_of(self, collaboration: Collaboration) -> Budget:
        return collaboration.budget or Budget(currency=self.settings.DEFAULT_CURRENCY)

    def _write(self, txn: Transaction, collaboration: Collaboration, budget: Budget) -> None:
        txn.update(
            COLLABORATIONS,
            collaboration.id,
            {"budget": budget.model_dump(by_alias=True), "updatedAt": utcnow()},
        )

    def summary(self, collaboration_id: str) -> BudgetSummary:
        collaboration = load_collaboration(self.store, collaboration_id)
        return summarize(collaboration_id, self._budget_of(collaboration))

    def add_cost(
        self,
        collaboration_id: str,
        item: CostItemCreate,
        *,
        actor_id: Optional[str] = None,
    ) -> CostItem:
        if item.amount is None or item.amount <= 0:
            raise ValidationException("Cost amount must be greater than zero", field="amount")

        def _txn(txn: Transaction) -> CostItem:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            budget = self._budget_of(collaboration)
            cost = CostItem(
                id=f"cost_{uuid.uuid4().hex}",
                name=item.name,
                amount=item.amount,
                currency=item.currency or budget.currency,
                category=item.category,
                description=item.description,
                status=item.status,
            )
            budget.items.append(cost)
            self._write(txn, collaboration, _recompute(budget))
            return cost

        cost = self.store.run_transaction(_txn)
        logger.info(f"Added cost {cost.id} ({cost.amount}) to {collaboration_id}")
        return cost

    def remove_cost(
        self, collaboration_id: str, item_id: str, *, actor_id: Optional[str] = None
    ) -> bool:
        """Remove a cost item; returns False when no item had that id."""

        def _txn(txn: Transaction) -> bool:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            if collaboration.budget is None:
                return False
            budget = collaboration.budget
            kept = [item for item in budget.items if item.id != item_id]
            if len(kept) == len(budget.items):
                return False
            budget.items = kept
            self._write(txn, collaboration, _recompute(budget))
            return True

        removed = self.store.run_transaction(_txn)
        if removed:
            logger.info(f"Removed cost {item_id} from {collaboration_id}")
        return removed

    def set_cost_status(
        self,
        collaboration_id: str,
        item_id: str,
        status: CostStatus,
        *,
        actor_id: Optional[str] = None,
    ) -> CostItem:
        """Change an item's payment status. Cancelled items still count toward ``spent``."""
        target = CostStatus(status).value

        def _txn(txn: Transaction) -> CostItem:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            budget = self._budget_of(collaboration)
            item = next((i for i in budget.items if i.id == item_id), None)
            if item is None:
                raise ResourceNotFoundException("Cost item", item_id)
            if item.status != target:
                item.status = target
                self._write(txn, collaboration, budget)
            return item

        return self.store.run_transaction(_txn)

    def set_budget_total(
        self,
        collaboration_id: str,
        total: float,
        currency: Optional[str] = None,
        *,
        actor_id: Optional[str] = None,
    ) -> BudgetSummary:
        if total is None or total < 0:
            raise ValidationException("Budget total cannot be negative", field="total")

        def _txn(txn: Transaction) -> Budget:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            budget = self._budget_of(collaboration)
            budget.total = total
            if currency:
                budget.currency = currency
            self._write(txn, collaboration, budget)
            return budget

        budget = self.store.run_transaction(_txn)
        summary = summarize(collaboration_id, budget)
        if summary.over_budget:
            logger.warning(
                f"Budget total {budget.total} for {collaboration_id} is below spent {budget.spent}"
            )
        return summary

    def _set_breakdown(self, collaboration_id: str, field: str, value, actor_id) -> None:
        def _txn(txn: Transaction) -> None:
            collaboration = load_collaboration(txn, collaboration_id)
            require_creator(collaboration, actor_id)
            txn.update(
                COLLABORATIONS,
                collaboration_id,
                {field: value.model_dump(by_alias=True), "updatedAt": utcnow()},
            )

        self.store.run_transaction(_txn)
        logger.info(f"Updated {field} of {collaboration_id} (total {value.total})")

    def update_studio_costs(
        self,
        collaboration_id: str,
        costs: StudioCosts,
        *,
        actor_id: Optional[str] = None,
    ) -> StudioCosts:
        """Replace the studio quote breakdown. The ledger items and ``spent`` are untouched."""
        self._set_breakdown(collaboration_id, "studioCosts", costs, actor_id)
        return costs

    def update_mixing_costs(
        self,
        collaboration_id: str,
        costs: MixingCosts,
        *,
        actor_id: Optional[str] = None,
    ) -> MixingCosts:
        self._set_breakdown(collaboration_id, "mixingCosts", costs, actor_id)
        return costs
