"""
Game Engine Tests.

Transactional behaviour of the single-writer engine: refresh before every
operation, copy-on-write commits, persistence through the document store,
referral propagation between aggregates, and scheduled ticks.
"""
import math

import pytest

from app.config.game_constants import DAY_MS
from app.db.database import InMemoryDocumentStore, StoredDocumentError
from app.models.schemas import (
    BuffType,
    Plan,
    SlotStatus,
    WithdrawMethod,
    WithdrawStatus,
)
from app.services import withdrawals
from app.services.game_engine import GameEngine, UserNotFoundError, growth_due
from conftest import ScriptedRandom, ripen_all, set_user_fields


class FlakyStore(InMemoryDocumentStore):
    """In-memory store that can be told to fail saves."""

    def __init__(self):
        super().__init__()
        self.fail = False
        self.fail_users = set()
        self.saves = []

    def save(self, user_id, partial):
        if self.fail or user_id in self.fail_users:
            raise ConnectionError("database unavailable")
        self.saves.append((user_id, sorted(partial.keys())))
        super().save(user_id, partial)


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def flaky_engine(flaky_store, clock, rng):
    return GameEngine(flaky_store, clock=clock, rng=rng, ton_withdraw_fee=0.10, paid_spin_reveal_ms=2000)


def harvest_one(engine, clock, user_id):
    engine.plant(user_id, 1)
    ripen_all(engine, clock)
    return engine.harvest(user_id, 1)


@pytest.mark.integration
class TestAccounts:
    """User creation and lookup."""

    def test_create_then_load(self, engine):
        state, created = engine.get_or_create_user("42", "neo")
        assert created is True
        assert state.user.plan == Plan.FREE
        assert state.user.storage_max == 100
        assert state.slot(1).status == SlotStatus.EMPTY

        again, created = engine.get_or_create_user("42", "other-name")
        assert created is False
        assert again.user.username == "neo"

    def test_unknown_user(self, engine):
        with pytest.raises(UserNotFoundError):
            engine.plant("nobody", 1)

    def test_returned_state_is_a_copy(self, engine, farmer):
        state = engine.get_state(farmer)
        state.user.balance = 1_000_000
        assert engine.get_state(farmer).user.balance == 0

    def test_state_survives_restart(self, engine, store, clock, farmer):
        engine.plant(farmer, 1)
        fresh = GameEngine(store, clock=clock, rng=ScriptedRandom())
        state = fresh.get_state(farmer)
        assert state.slot(1).status == SlotStatus.GROWING
        assert state.slot(1).crop.name == "Water Spinach"

    def test_unreadable_document(self, engine, store):
        store.save("broken", {"user": {"id": "broken"}})
        with pytest.raises(StoredDocumentError):
            engine.get_state("broken")


@pytest.mark.integration
class TestTransactions:
    """Only successful actions are committed, and only changed keys are saved."""

    def test_rejection_saves_nothing(self, flaky_engine, flaky_store):
        flaky_engine.get_or_create_user("7", "seven")
        flaky_store.saves.clear()

        result = flaky_engine.purchase_slot("7", 2)
        assert result["success"] is False
        assert flaky_store.saves == []

    def test_partial_save_of_changed_keys(self, flaky_engine, flaky_store):
        flaky_engine.get_or_create_user("7", "seven")
        flaky_store.saves.clear()

        flaky_engine.plant("7", 1)
        assert flaky_store.saves == [("7", ["slots"])]

    def test_failed_save_leaves_state_untouched(self, flaky_engine, flaky_store):
        flaky_engine.get_or_create_user("7", "seven")
        set_user_fields(flaky_engine, "7", balance=15_000)

        flaky_store.fail = True
        with pytest.raises(ConnectionError):
            flaky_engine.purchase_slot("7", 2)

        flaky_store.fail = False
        state = flaky_engine.get_state("7")
        assert state.user.balance == 15_000
        assert state.slot(2).is_purchased is False

    def test_purchase_scenarios(self, engine, farmer):
        set_user_fields(engine, farmer, balance=5_000)
        assert engine.purchase_slot(farmer, 2)["success"] is False
        assert engine.get_state(farmer).user.balance == 5_000

        set_user_fields(engine, farmer, balance=15_000)
        assert engine.purchase_slot(farmer, 2)["success"] is True
        state = engine.get_state(farmer)
        assert state.user.balance == 5_000
        assert state.slot(2).is_purchased is True
        assert state.slot(2).status == SlotStatus.EMPTY


@pytest.mark.integration
class TestRefresh:
    """Time-driven state catches up before any operation runs."""

    def test_harvest_without_tick(self, engine, clock, farmer):
        engine.plant(farmer, 1)
        clock.advance(seconds=240)
        result = engine.harvest(farmer, 1)
        assert result["success"] is True
        assert result["crop_name"] == "Water Spinach"

    def test_too_early(self, engine, clock, farmer):
        engine.plant(farmer, 1)
        clock.advance(seconds=239)
        assert engine.harvest(farmer, 1)["message"] == "Crop is not ready"

    def test_expired_buffs_swept(self, engine, clock, farmer):
        set_user_fields(engine, farmer, balance=1_000)
        engine.buy_item(farmer, "speed_soil")
        assert BuffType.SPEED_SOIL in engine.get_state(farmer).active_buffs

        clock.advance(ms=DAY_MS)
        assert engine.get_state(farmer).active_buffs == {}

    def test_paid_spin_settles_on_next_read(self, engine, clock, rng, farmer):
        set_user_fields(engine, farmer, balance=200)
        rng.push(0.0)
        result = engine.start_spin(farmer, paid=True)
        assert result["success"] is True
        assert engine.get_state(farmer).user.balance == 50

        clock.advance(ms=2_000)
        state = engine.get_state(farmer)
        assert state.user.balance == 1_550
        assert state.spin.pending_reward is None

    def test_daily_reset_on_new_day(self, engine, clock, farmer):
        engine.on_ad_watched(farmer)
        clock.advance(ms=DAY_MS)
        overview = engine.daily_task_overview(farmer)
        assert overview["last_daily_reset"] == "2026-01-02"
        assert all(task.current_progress == 0 for task in overview["tasks"])


@pytest.mark.integration
class TestTaskWiring:
    """Game events advance the matching daily tasks."""

    def _progress(self, engine, user_id, task_id):
        tasks = engine.daily_task_overview(user_id)["tasks"]
        return next(t for t in tasks if t.id == task_id).current_progress

    def test_rare_planting_counts(self, engine, rng, farmer):
        rng.push(0.02, 0.0)
        result = engine.plant(farmer, 1)
        assert result["crop"].name == "Asparagus"
        assert self._progress(engine, farmer, "plant_rare") == 1

    def test_common_planting_does_not_count(self, engine, farmer):
        engine.plant(farmer, 1)
        assert self._progress(engine, farmer, "plant_rare") == 0

    def test_harvest_and_sell(self, engine, clock, farmer):
        harvest_one(engine, clock, farmer)
        assert self._progress(engine, farmer, "harvest_crops") == 1

        result = engine.sell_all(farmer)
        assert result["success"] is True
        assert self._progress(engine, farmer, "sell_market") == 1
        assert self._progress(engine, farmer, "earn_pts") == result["total"]

    def test_booster_counts_as_ad(self, engine, farmer):
        result = engine.activate_booster(farmer)
        assert result["success"] is True
        assert self._progress(engine, farmer, "watch_ads") == 1
        assert BuffType.PRICE_BOOSTER in engine.get_state(farmer).active_buffs

    def test_social_events(self, engine, farmer):
        engine.on_join_channel(farmer)
        engine.on_friend_invited(farmer)
        assert self._progress(engine, farmer, "join_channel") == 1
        assert self._progress(engine, farmer, "invite_friend") == 1


@pytest.mark.integration
class TestHarvestAll:
    def test_batch_harvest_over_capacity_changes_nothing(self, engine, clock, farmer):
        set_user_fields(engine, farmer, balance=20_000)
        engine.purchase_slot(farmer, 2)
        engine.plant(farmer, 1)
        engine.plant(farmer, 2)
        ripen_all(engine, clock)
        set_user_fields(engine, farmer, storage_used=99)

        result = engine.harvest_all(farmer)
        assert result["success"] is False
        assert result["storage_full"] is True

        state = engine.get_state(farmer)
        assert state.user.storage_used == 99
        assert state.slot(1).status == SlotStatus.READY
        assert state.slot(2).status == SlotStatus.READY

    def test_batch_harvest(self, engine, clock, farmer):
        set_user_fields(engine, farmer, balance=20_000)
        engine.purchase_slot(farmer, 2)
        engine.plant(farmer, 1)
        engine.plant(farmer, 2)
        ripen_all(engine, clock)

        result = engine.harvest_all(farmer)
        assert result["total_harvested"] == 2
        state = engine.get_state(farmer)
        assert state.user.storage_used == 2
        assert state.user.total_harvests == 2


@pytest.mark.integration
class TestReferrals:
    """Sales and upgrades flow to the direct referrer only."""

    @pytest.fixture
    def chain(self, engine):
        engine.get_or_create_user("A", "alpha")
        engine.get_or_create_user("B", "bravo", referrer_id="A")
        engine.get_or_create_user("C", "charlie", referrer_id="B")
        return engine

    def test_registration_tiers(self, chain):
        a = chain.affiliate_overview("A")
        assert [(r.id, r.tier) for r in a["referrals"]] == [("B", 1), ("C", 2)]
        b = chain.affiliate_overview("B")
        assert [(r.id, r.tier) for r in b["referrals"]] == [("C", 1)]
        assert chain.get_state("C").user.referral_id == "B"

    def test_unknown_referrer_ignored(self, engine):
        state, _ = engine.get_or_create_user("D", "delta", referrer_id="ghost")
        assert state.user.referral_id is None

    def test_sale_credits_direct_referrer(self, chain, clock):
        harvest_one(chain, clock, "C")
        total = chain.sell_all("C")["total"]

        assert chain.get_state("B").user.pending_commission == math.floor(total * 0.10)
        assert chain.get_state("A").user.pending_commission == 0

    def test_upgrade_bonus_to_referrer(self, chain):
        result = chain.upgrade_plan("B", Plan.TENANT)
        assert result["success"] is True
        assert chain.get_state("A").user.pending_commission == 100_000

        claim = chain.claim_commission("A")
        assert claim["amount"] == 100_000
        assert chain.get_state("A").user.balance == 100_000

    def test_sale_kept_when_referrer_document_unreadable(self, engine, store, clock):
        engine.get_or_create_user("kid", "kid")
        set_user_fields(engine, "kid", referral_id="ref")
        store.save("ref", {"user": "garbage"})

        harvest_one(engine, clock, "kid")
        result = engine.sell_all("kid")

        assert result["success"] is True
        assert result["total"] > 0
        assert engine.get_state("kid").user.balance == result["total"]
        assert store.get("kid")["user"]["balance"] == result["total"]

    def test_upgrade_kept_when_referrer_save_fails(self, flaky_engine, flaky_store):
        flaky_engine.get_or_create_user("A", "alpha")
        flaky_engine.get_or_create_user("B", "bravo", referrer_id="A")
        flaky_store.fail_users.add("A")

        result = flaky_engine.upgrade_plan("B", Plan.TENANT)

        assert result["success"] is True
        assert flaky_engine.get_state("B").user.plan == Plan.TENANT
        flaky_store.fail_users.clear()
        assert flaky_engine.get_state("A").user.pending_commission == 0

    def test_referral_sale_reports_upline_failure(self, engine, store):
        store.save("ref", {"user": "garbage"})
        result = engine.record_referral_sale("ref", "kid", 1_000)
        assert result == {"success": False, "message": "Referrer update failed"}

    def test_upgrade_opens_slots(self, chain):
        chain.upgrade_plan("C", Plan.MORTGAGE)
        state = chain.get_state("C")
        assert state.user.storage_max == 240
        assert [s.status for s in state.slots[:6]] == [SlotStatus.EMPTY] * 4 + [SlotStatus.LOCKED_SHOP] * 2
        assert chain.upgrade_plan("C", Plan.MORTGAGE)["message"] == "Already on Mortgage plan"


@pytest.mark.integration
class TestSpinAndWithdraw:
    def test_free_spin_twice_in_an_hour(self, engine, clock, rng, farmer):
        rng.push(0.7)
        assert engine.start_spin(farmer, paid=False)["success"] is True
        assert engine.claim_free_spin_reward(farmer)["success"] is True
        before = engine.get_state(farmer)

        clock.advance(seconds=600)
        result = engine.start_spin(farmer, paid=False)
        assert result["success"] is False
        assert result["message"].startswith("Cooldown:")
        assert engine.get_state(farmer) == before

    def test_first_withdrawal_locks_email(self, engine, farmer):
        set_user_fields(engine, farmer, balance=5_000)
        result = engine.request_withdrawal(farmer, 500, WithdrawMethod.FAUCETPAY, "farmer@example.com")
        assert result["success"] is True
        assert result["withdrawal"].amount_usdt == pytest.approx(0.002)

        state = engine.get_state(farmer)
        assert state.user.balance == 4_500
        assert state.user.wallet_email == "farmer@example.com"
        assert state.withdrawals[0].status == WithdrawStatus.PENDING

        other = engine.request_withdrawal(farmer, 1_000, WithdrawMethod.FAUCETPAY, "other@example.com")
        assert other["success"] is False
        assert other["message"] == "Withdrawals via FAUCETPAY are locked to farmer@example.com"

    def test_withdrawal_validated_once(self, engine, farmer, monkeypatch):
        calls = []
        original = withdrawals.validate_request

        def counting(*args, **kwargs):
            calls.append(args)
            return original(*args, **kwargs)

        monkeypatch.setattr(withdrawals, "validate_request", counting)
        set_user_fields(engine, farmer, balance=5_000)

        assert engine.request_withdrawal(farmer, 500, WithdrawMethod.FAUCETPAY, "a@b.io")["success"] is True
        assert len(calls) == 1

        rejected = engine.request_withdrawal(farmer, 10, WithdrawMethod.FAUCETPAY, "a@b.io")
        assert rejected["message"] == "Minimum withdrawal is 1000 PTS"
        assert len(calls) == 2

    def test_settle_failed_refunds(self, engine, farmer):
        set_user_fields(engine, farmer, balance=5_000)
        wid = engine.request_withdrawal(farmer, 500, WithdrawMethod.FAUCETPAY, "a@b.io")["withdrawal"].id
        assert engine.settle_withdrawal(farmer, wid, WithdrawStatus.FAILED)["success"] is True
        assert engine.get_state(farmer).user.balance == 5_000


@pytest.mark.integration
class TestTicks:
    """Scheduled ticks walk every loaded aggregate."""

    def test_growth_tick(self, engine, clock, farmer):
        engine.get_or_create_user("2002", "second")
        engine.plant(farmer, 1)
        clock.advance(seconds=240)
        assert engine.tick_growth() == 1
        assert engine.tick_growth() == 0
        assert engine._states[farmer].slot(1).status == SlotStatus.READY

    def test_buff_sweep_tick(self, engine, clock, farmer):
        engine.activate_booster(farmer)
        clock.advance(hours=1)
        assert engine.tick_buff_sweep() == 1
        assert engine._states[farmer].active_buffs == {}

    def test_daily_reset_tick(self, engine, clock, farmer):
        clock.advance(ms=DAY_MS)
        assert engine.tick_daily_reset() == 1
        assert engine._states[farmer].user.last_daily_reset == "2026-01-02"

    def test_tick_survives_store_failure(self, flaky_engine, flaky_store, clock):
        flaky_engine.get_or_create_user("7", "seven")
        flaky_engine.plant("7", 1)
        clock.advance(seconds=240)

        flaky_store.fail = True
        assert flaky_engine.tick_growth() == 0
        assert flaky_engine._states["7"].slot(1).status == SlotStatus.GROWING

    def test_idle_players_are_skipped(self, engine, clock, farmer):
        live = engine._states[farmer]
        clock.advance(seconds=30)

        assert engine.tick_growth() == 0
        assert engine.tick_buff_sweep() == 0
        assert engine.tick_daily_reset() == 0
        assert engine._states[farmer] is live

    def test_growth_due(self, engine, clock, farmer):
        engine.plant(farmer, 1)
        assert growth_due(engine._states[farmer], clock()) is False
        assert growth_due(engine._states[farmer], clock.advance(seconds=240)) is True


@pytest.mark.integration
class TestCacheBound:
    """The engine keeps at most max_cached_users aggregates in memory."""

    def test_oldest_player_evicted_and_reloaded(self, store, clock, rng):
        engine = GameEngine(store, clock=clock, rng=rng, max_cached_users=2)
        engine.get_or_create_user("1", "one")
        engine.plant("1", 1)
        engine.get_or_create_user("2", "two")
        engine.get_or_create_user("3", "three")

        assert sorted(engine._states) == ["2", "3"]

        reloaded = engine.get_state("1")
        assert reloaded.slot(1).status == SlotStatus.GROWING
        assert len(engine._states) == 2
        assert "1" in engine._states
