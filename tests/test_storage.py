"""
Barn Storage Tests.

Capacity accounting, the yield booster, batch capacity checks and selling.
"""
import pytest

from app.models.schemas import CropInstance, ItemType, Plan, Rarity, SlotStatus
from app.services import storage
from app.services.game_engine import new_farm_state
from conftest import START_MS, ScriptedRandom


@pytest.fixture
def state():
    return new_farm_state("u1", "tester", START_MS)


def make_ready(state, *slot_ids):
    for slot_id in slot_ids:
        slot = state.slot(slot_id)
        slot.is_purchased = slot_id != 1
        slot.status = SlotStatus.READY
        slot.crop = CropInstance(name="Tomato", rarity=Rarity.UNCOMMON, growth_time=300)
        slot.planted_at = START_MS - 600_000


@pytest.mark.unit
class TestCapacity:
    """Capacity and the barn gauge."""

    def test_capacity_includes_upgrades(self, state):
        assert storage.capacity(state.user) == 100
        state.user.extra_storage = 40
        assert storage.capacity(state.user) == 140

    def test_owner_is_unlimited(self, state):
        state.user.storage_max = None
        info = storage.storage_info(state.user)
        assert storage.capacity(state.user) is None
        assert info["is_unlimited"] is True
        assert info["capacity"] is None
        assert info["is_full"] is False

    def test_near_full_and_full(self, state):
        state.user.storage_used = 89
        assert storage.storage_info(state.user)["is_near_full"] is False

        state.user.storage_used = 90
        info = storage.storage_info(state.user)
        assert info["percentage"] == 90
        assert info["is_near_full"] is True
        assert info["is_full"] is False

        state.user.storage_used = 100
        assert storage.storage_info(state.user)["is_full"] is True


@pytest.mark.unit
class TestYield:
    """Yield booster gives a 25% chance of a double harvest."""

    def test_no_booster_never_draws(self, state):
        rng = ScriptedRandom([0.0])
        assert storage.roll_yield(state.user, rng) == 1
        assert rng.calls == 0

    def test_booster_double(self, state):
        state.user.has_yield_booster = True
        assert storage.roll_yield(state.user, ScriptedRandom([0.24])) == 2
        assert storage.roll_yield(state.user, ScriptedRandom([0.25])) == 1

    def test_double_needs_two_free_units(self, state):
        make_ready(state, 1)
        state.user.has_yield_booster = True
        state.user.storage_used = 99

        check = storage.can_harvest(state.slot(1), state.user, ScriptedRandom([0.1]))
        assert check["can"] is False
        assert check["reason"] == "Not enough storage for harvest"

        check = storage.can_harvest(state.slot(1), state.user, ScriptedRandom([0.9]))
        assert check["can"] is True
        assert check["amount"] == 1
        assert check["available"] == 1


@pytest.mark.unit
class TestBatchHarvest:
    """All READY slots are checked against capacity as one unit."""

    def test_batch_fits(self, state):
        make_ready(state, 1, 2, 3)
        plan = storage.plan_batch_harvest(state, ScriptedRandom())
        assert plan["can"] is True
        assert plan["yields"] == {1: 1, 2: 1, 3: 1}
        assert plan["total"] == 3

    def test_batch_is_all_or_nothing(self, state):
        make_ready(state, 1, 2, 3)
        state.user.storage_used = 98
        plan = storage.plan_batch_harvest(state, ScriptedRandom())
        assert plan["can"] is False
        assert plan["reason"] == "Not enough storage: need 3, have 2"

    def test_unlimited_batch(self, state):
        make_ready(state, 1, 2)
        state.user.storage_max = None
        state.user.storage_used = 10_000
        assert storage.plan_batch_harvest(state, ScriptedRandom())["can"] is True


@pytest.mark.unit
class TestInventory:
    """Crops count against storage, tools do not."""

    def test_add_crop_and_tool(self, state):
        storage.add_crop(state, "Corn", Rarity.COMMON, 3)
        storage.add_crop(state, "Corn", Rarity.COMMON, 2)
        storage.add_tool(state, "speed_soil")

        assert state.inventory["Corn"].quantity == 5
        assert state.user.storage_used == 5
        assert state.inventory["speed_soil"].type == ItemType.TOOL
        assert [item.crop_name for item in storage.crop_items(state)] == ["Corn"]
        assert [item.crop_name for item in storage.tool_items(state)] == ["speed_soil"]

    def test_sell_all_clears_crops_keeps_tools(self, state):
        storage.add_crop(state, "Corn", Rarity.COMMON, 4)
        storage.add_crop(state, "Wasabi", Rarity.LEGENDARY, 1)
        storage.add_tool(state, "trade_permit", 2)

        result = storage.sell_all(state, START_MS)
        assert result["success"] is True
        assert result["total"] == sum(entry["total_price"] for entry in result["sold"])
        assert result["total"] > 0
        assert state.user.balance == result["total"]
        assert state.user.total_sales == result["total"]
        assert state.user.storage_used == 0
        assert list(state.inventory.keys()) == ["trade_permit"]
        assert state.inventory["trade_permit"].quantity == 2

    def test_sell_all_plan_bonus(self, state):
        storage.add_crop(state, "Corn", Rarity.COMMON, 10)
        free_total = storage.sell_all(state.model_copy(deep=True), START_MS)["total"]

        state.user.plan = Plan.OWNER
        owner_total = storage.sell_all(state, START_MS)["total"]
        assert owner_total > free_total

    def test_sell_nothing(self, state):
        storage.add_tool(state, "speed_soil")
        result = storage.sell_all(state, START_MS)
        assert result == {"success": False, "message": "Nothing to sell"}
        assert state.user.balance == 0
