import logging
import random

import pytest

from app.core.exceptions import (
    OwnershipRequiredException,
    ResourceNotFoundException,
    ValidationException,
)
from app.modules.collaboration.models import (
    COLLABORATIONS,
    CostItem,
    MixingCosts,
    StudioCosts,
)
from app.modules.collaboration.schemas import CostItemCreate


def _spent(store, collaboration_id):
    return store.get(COLLABORATIONS, collaboration_id).get("budget.spent")


def test_spent_follows_items(ledger, new_collaboration, store):
    collab = new_collaboration(budget_total=500)
    studio = ledger.add_cost(
        collab.id, CostItemCreate(name="Studio", amount=150, category="studio")
    )
    ledger.add_cost(collab.id, CostItemCreate(name="Mixing", amount=50, category="mixing"))
    assert _spent(store, collab.id) == 200

    assert ledger.remove_cost(collab.id, studio.id) is True
    assert _spent(store, collab.id) == 50
    summary = ledger.summary(collab.id)
    assert summary.item_count == 1
    assert summary.remaining == 450
    assert summary.progress_percent == 10


def test_removing_unknown_item_is_a_noop(ledger, new_collaboration, store):
    collab = new_collaboration()
    ledger.add_cost(collab.id, CostItemCreate(name="Studio", amount=80))
    version = store.get(COLLABORATIONS, collab.id).version

    assert ledger.remove_cost(collab.id, "cost_missing") is False
    assert store.get(COLLABORATIONS, collab.id).version == version
    assert _spent(store, collab.id) == 80


def test_first_cost_creates_budget_in_default_currency(ledger, new_collaboration):
    collab = new_collaboration()
    item = ledger.add_cost(collab.id, CostItemCreate(name="Strings", amount=12.5))
    assert item.id.startswith("cost_")
    assert item.currency == ledger.settings.DEFAULT_CURRENCY
    assert ledger.summary(collab.id).spent == 12.5


def test_spent_is_the_exact_sum_of_sub_cent_amounts(ledger, new_collaboration, store):
    collab = new_collaboration()
    for _ in range(3):
        ledger.add_cost(collab.id, CostItemCreate(name="Plugin", amount=0.004))

    items = store.get(COLLABORATIONS, collab.id).get("budget.items")
    assert len(items) == 3
    assert _spent(store, collab.id) == sum(item["amount"] for item in items)
    assert _spent(store, collab.id) > 0.01


@pytest.mark.parametrize("amount", [0, -10])
def test_non_positive_amounts_are_rejected(ledger, new_collaboration, amount):
    collab = new_collaboration()
    with pytest.raises(ValidationException):
        ledger.add_cost(collab.id, CostItemCreate(name="Oops", amount=amount))
    assert ledger.summary(collab.id).item_count == 0


def test_ledger_requires_creator(ledger, new_collaboration):
    collab = new_collaboration()
    with pytest.raises(OwnershipRequiredException):
        ledger.add_cost(collab.id, CostItemCreate(name="Studio", amount=10), actor_id="ann")
    with pytest.raises(OwnershipRequiredException):
        ledger.set_budget_total(collab.id, 100, actor_id="ann")


def test_total_below_spent_is_flagged(ledger, new_collaboration, caplog):
    collab = new_collaboration(budget_total=300)
    ledger.add_cost(collab.id, CostItemCreate(name="Studio", amount=200))

    with caplog.at_level(logging.WARNING):
        summary = ledger.set_budget_total(collab.id, 100, "EUR")

    assert summary.over_budget is True
    assert summary.currency == "EUR"
    assert summary.remaining == 0
    assert any("below spent" in r.getMessage() for r in caplog.records)
    with pytest.raises(ValidationException):
        ledger.set_budget_total(collab.id, -1)


def test_cost_status_does_not_change_spent(ledger, new_collaboration, store):
    collab = new_collaboration()
    item = ledger.add_cost(collab.id, CostItemCreate(name="Studio", amount=75))

    assert ledger.set_cost_status(collab.id, item.id, "paid").status == "paid"
    assert ledger.set_cost_status(collab.id, item.id, "cancelled").status == "cancelled"
    assert _spent(store, collab.id) == 75
    with pytest.raises(ResourceNotFoundException):
        ledger.set_cost_status(collab.id, "cost_missing", "paid")


def test_budget_edits_allowed_after_completion(ledger, collaborations, new_collaboration):
    collab = new_collaboration()
    collaborations.set_status(collab.id, "in_progress", actor_id="creator")
    collaborations.set_status(collab.id, "completed", actor_id="creator")
    ledger.add_cost(collab.id, CostItemCreate(name="Mastering", amount=40))
    assert ledger.summary(collab.id).spent == 40


def test_spent_matches_random_add_remove_sequence(ledger, new_collaboration, store):
    rng = random.Random(7)
    collab = new_collaboration()
    present = {}
    for step in range(60):
        if present and rng.random() < 0.4:
            item_id = rng.choice(sorted(present))
            assert ledger.remove_cost(collab.id, item_id)
            del present[item_id]
        else:
            amount = round(rng.uniform(0.01, 500), 2)
            item = ledger.add_cost(collab.id, CostItemCreate(name=f"item {step}", amount=amount))
            present[item.id] = amount
        assert _spent(store, collab.id) == round(sum(present.values()), 2)


def test_studio_and_mixing_breakdowns_leave_the_ledger_alone(ledger, new_collaboration, store):
    collab = new_collaboration()
    ledger.add_cost(collab.id, CostItemCreate(name="Studio", amount=150))

    studio = ledger.update_studio_costs(
        collab.id,
        StudioCosts(
            studio_time=300,
            engineer=120,
            additional_services=[
                CostItem(id="svc_1", name="Tape", amount=30, currency="USD")
            ],
        ),
    )
    mixing = ledger.update_mixing_costs(collab.id, MixingCosts(mixing=200, mastering=80))

    assert studio.total == 450
    assert mixing.total == 280
    data = store.get(COLLABORATIONS, collab.id).data
    assert data["studioCosts"]["studioTime"] == 300
    assert data["studioCosts"]["additionalServices"][0]["name"] == "Tape"
    assert data["mixingCosts"] == {
        "mixing": 200,
        "mastering": 80,
        "additionalEdits": 0,
        "revisions": 0,
    }
    assert _spent(store, collab.id) == 150


def test_only_the_creator_sets_cost_breakdowns(ledger, new_collaboration):
    collab = new_collaboration()
    with pytest.raises(OwnershipRequiredException):
        ledger.update_mixing_costs(collab.id, MixingCosts(mixing=10), actor_id="ann")
    with pytest.raises(ResourceNotFoundException):
        ledger.update_studio_costs("missing", StudioCosts(studio_time=10))
