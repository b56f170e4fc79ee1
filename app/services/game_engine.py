"""
Game engine: the single writer for every player's FarmState.

Every operation runs under that player's lock, refreshes time-driven state
(growth, buff expiry, due paid spins, daily reset), then applies the action
to a deep copy of the aggregate. The copy replaces the live state only if
the action succeeds and the changed top-level keys were persisted; a
rejected action or a failed save leaves the live state untouched.
"""

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..config.game_constants import PLAN_CONFIG, PRICE_BOOSTER_DURATION
from ..db.database import DocumentStore, StoredDocumentError, get_document_store
from ..models.schemas import (
    BuffType,
    FarmState,
    Plan,
    TaskAction,
    User,
    WithdrawMethod,
    WithdrawStatus,
)
from . import affiliate, buffs, daily_tasks, shop, slots, spin, storage, withdrawals
from .pricing import market_prices

logger = logging.getLogger(__name__)

Action = Callable[[FarmState, int], Dict[str, Any]]


class UserNotFoundError(LookupError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_farm_state(user_id: str, username: str, now: int) -> FarmState:
    """A brand new FREE player: slot 1 open, tasks fresh for today."""
    user = User(
        id=user_id,
        username=username,
        plan=Plan.FREE,
        storage_max=PLAN_CONFIG[Plan.FREE]["storage"],
        last_daily_reset=daily_tasks.utc_date_string(now),
        created_at=now,
    )
    return FarmState(
        user=user,
        slots=slots.initial_slots(Plan.FREE),
        daily_tasks=daily_tasks.initialize_tasks(),
    )


class GameEngine:
    """Owns the in-memory aggregates and serializes all writes to them."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Optional[Callable[[], int]] = None,
        rng=None,
        ton_withdraw_fee: Optional[float] = None,
        paid_spin_reveal_ms: Optional[int] = None,
        bot_username: Optional[str] = None,
        max_cached_users: Optional[int] = None,
    ):
        from app.core.config import settings

        self.store = store
        self.clock = clock or _now_ms
        self.rng = rng or random.SystemRandom()
        self.ton_withdraw_fee = settings.ton_withdraw_fee if ton_withdraw_fee is None else ton_withdraw_fee
        self.paid_spin_reveal_ms = (
            settings.paid_spin_reveal_ms if paid_spin_reveal_ms is None else paid_spin_reveal_ms
        )
        self.bot_username = bot_username or settings.bot_username
        self.max_cached_users = max_cached_users or settings.max_cached_users

        self._states: Dict[str, FarmState] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # Aggregate plumbing
    # =========================================================================

    def _lock_for(self, user_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def _load(self, user_id: str) -> Optional[FarmState]:
        state = self._states.get(user_id)
        if state is not None:
            return state

        document = self.store.get(user_id)
        if document is None:
            return None

        try:
            state = FarmState.model_validate(document)
        except ValidationError as e:
            logger.error(f"[ENGINE] Stored document for {user_id} failed validation: {e}")
            raise StoredDocumentError(user_id, f"{e.error_count()} validation error(s)")

        self._states[user_id] = state
        self._evict_overflow(keep=user_id)
        return state

    def _evict_overflow(self, keep: str) -> None:
        """
        Drop the oldest cached aggregates once the cache is over its bound.

        Every committed change is already in the store, so an evicted player
        is simply reloaded on next access. Players whose lock is held right
        now are skipped.
        """
        for user_id in list(self._states.keys()):
            if len(self._states) <= self.max_cached_users:
                return
            if user_id == keep:
                continue
            lock = self._lock_for(user_id)
            if not lock.acquire(blocking=False):
                continue
            try:
                self._states.pop(user_id, None)
            finally:
                lock.release()
            logger.debug(f"[ENGINE] Evicted {user_id} from cache")

    def _require(self, user_id: str) -> FarmState:
        state = self._load(user_id)
        if state is None:
            raise UserNotFoundError(user_id)
        return state

    def _commit(self, user_id: str, before: FarmState, after: FarmState) -> List[str]:
        """Persist the top-level keys that changed, then publish the new state."""
        old = before.model_dump(mode="json")
        new = after.model_dump(mode="json")
        changed = {key: value for key, value in new.items() if old.get(key) != value}

        if changed:
            self.store.save(user_id, changed)
        self._states[user_id] = after
        return list(changed.keys())

    def _refresh(self, user_id: str, now: int) -> None:
        state = self._states[user_id]
        draft = state.model_copy(deep=True)

        buffs.sweep_expired(draft.active_buffs, now)
        slots.advance_growth(draft.slots, now)
        reward = spin.settle_due(draft, now)
        if reward is not None:
            logger.info(f"[ENGINE] Paid spin settled for {user_id}: {spin.format_reward(reward)}")
        if daily_tasks.reset_if_new_day(draft, now):
            logger.info(f"[ENGINE] Daily tasks reset for {user_id}")

        self._commit(user_id, state, draft)

    def _transact(self, user_id: str, name: str, action: Action, audit: bool = False) -> Dict[str, Any]:
        with self._lock_for(user_id):
            self._require(user_id)
            now = self.clock()
            self._refresh(user_id, now)

            current = self._states[user_id]
            draft = current.model_copy(deep=True)
            result = action(draft, now)

            if not result.get("success"):
                logger.debug(f"[ENGINE] {name} rejected for {user_id}: {result.get('message')}")
                return result

            self._commit(user_id, current, draft)
            if audit:
                logger.info(f"[ENGINE] {name} committed for {user_id}: {result.get('message')}")
            return result

    def _read(self, user_id: str, view: Callable[[FarmState, int], Any]) -> Any:
        with self._lock_for(user_id):
            self._require(user_id)
            now = self.clock()
            self._refresh(user_id, now)
            return view(self._states[user_id].model_copy(deep=True), now)

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_or_create_user(
        self,
        user_id: str,
        username: str,
        referrer_id: Optional[str] = None,
    ) -> Tuple[FarmState, bool]:
        """
        Load a player, creating the aggregate on first login.

        A referrer is only attached at creation time, and only if that
        referrer already exists.
        """
        referrer = None
        if referrer_id and referrer_id != user_id:
            with self._lock_for(referrer_id):
                referrer = self._load(referrer_id)

        with self._lock_for(user_id):
            existing = self._load(user_id)
            if existing is not None:
                return existing.model_copy(deep=True), False

            now = self.clock()
            state = new_farm_state(user_id, username, now)
            if referrer is not None:
                state.user.referral_id = referrer.user.id

            self.store.save(user_id, state.model_dump(mode="json"))
            self._states[user_id] = state
            self._evict_overflow(keep=user_id)
            logger.info(f"[ENGINE] Created farm for {user_id} ({username})")

        if referrer is not None:
            self._register_downline(referrer.user.id, user_id, username, tier=1)
            if referrer.user.referral_id:
                self._register_downline(referrer.user.referral_id, user_id, username, tier=2)

        return state.model_copy(deep=True), True

    def _register_downline(self, upline_id: str, user_id: str, username: str, tier: int) -> None:
        try:
            self._transact(
                upline_id,
                "register_referral",
                lambda s, now: affiliate.register_referral(s, user_id, username, tier, now),
                audit=True,
            )
        except UserNotFoundError:
            logger.warning(f"[ENGINE] Upline {upline_id} of {user_id} no longer exists")

    def get_state(self, user_id: str) -> FarmState:
        return self._read(user_id, lambda s, now: s)

    def farm_status(self, user_id: str) -> Dict[str, Any]:
        def view(state: FarmState, now: int) -> Dict[str, Any]:
            return {
                "user": state.user,
                "plan": PLAN_CONFIG[state.user.plan]["name"],
                "slots": [
                    {**slot.model_dump(mode="json"), "remaining_seconds": slots.remaining_seconds(slot, now)}
                    for slot in state.slots
                ],
                "inventory": storage.crop_items(state),
                "tools": storage.tool_items(state),
                "active_buffs": buffs.remaining_ms(state.active_buffs, now),
                "storage": storage.storage_info(state.user),
                "spin": {
                    "pending_reward": state.spin.pending_reward,
                    "is_paid": state.spin.is_paid,
                    "reveal_at": state.spin.reveal_at,
                    "can_free_spin": spin.can_free_spin(state.user, now),
                    "remaining_cooldown": spin.remaining_cooldown(state.user, now),
                },
                "server_time": now,
            }

        return self._read(user_id, view)

    def upgrade_plan(self, user_id: str, plan: Plan) -> Dict[str, Any]:
        """Apply a paid membership. Payment itself is confirmed elsewhere."""

        def action(state: FarmState, now: int) -> Dict[str, Any]:
            if state.user.plan == plan:
                return {"success": False, "message": f"Already on {PLAN_CONFIG[plan]['name']} plan"}

            state.user.plan = plan
            state.user.storage_max = PLAN_CONFIG[plan]["storage"]
            slots.recompute_slot_statuses(state.slots, plan)
            return {"success": True, "message": f"Upgraded to {PLAN_CONFIG[plan]['name']}!", "plan": plan.value}

        result = self._transact(user_id, "upgrade_plan", action, audit=True)

        if result.get("success"):
            referrer_id = self._require(user_id).user.referral_id
            if referrer_id:
                self._credit_upline(
                    referrer_id,
                    user_id,
                    "record_upgrade",
                    lambda s, now: affiliate.record_upgrade(s, user_id, plan),
                )
        return result

    def _credit_upline(self, referrer_id: str, user_id: str, name: str, action: Action) -> Dict[str, Any]:
        """
        Apply a referral side effect to the referrer's aggregate.

        Runs after the player's own change is committed, so a failure here
        is logged and reported in the returned dict, never raised.
        """
        try:
            return self._transact(referrer_id, name, action, audit=True)
        except UserNotFoundError:
            logger.warning(f"[ENGINE] Referrer {referrer_id} of {user_id} no longer exists")
            return {"success": False, "message": "Referrer not found"}
        except Exception as e:
            logger.exception(f"[ENGINE] {name} failed on referrer {referrer_id} of {user_id}: {e}")
            return {"success": False, "message": "Referrer update failed"}

    # =========================================================================
    # Farming
    # =========================================================================

    def plant(self, user_id: str, slot_id: int) -> Dict[str, Any]:
        def action(state: FarmState, now: int) -> Dict[str, Any]:
            result = slots.plant(state, slot_id, now, self.rng)
            if result["success"]:
                daily_tasks.update_progress(
                    state.daily_tasks, TaskAction.PLANT_RARE, 1, rarity=result["crop"].rarity
                )
            return result

        return self._transact(user_id, "plant", action)

    def harvest(self, user_id: str, slot_id: int) -> Dict[str, Any]:
        def action(state: FarmState, now: int) -> Dict[str, Any]:
            result = slots.harvest(state, slot_id, now, self.rng)
            if result["success"]:
                daily_tasks.update_progress(state.daily_tasks, TaskAction.HARVEST, result["amount"])
                daily_tasks.update_progress(
                    state.daily_tasks, TaskAction.PLANT_RARE, 1, rarity=result["replanted"].rarity
                )
            return result

        return self._transact(user_id, "harvest", action)

    def harvest_all(self, user_id: str) -> Dict[str, Any]:
        def action(state: FarmState, now: int) -> Dict[str, Any]:
            result = slots.harvest_all(state, now, self.rng)
            if result["success"]:
                daily_tasks.update_progress(state.daily_tasks, TaskAction.HARVEST, result["total_harvested"])
                for entry in result["harvested"]:
                    daily_tasks.update_progress(
                        state.daily_tasks, TaskAction.PLANT_RARE, 1, rarity=entry["replanted"].rarity
                    )
            return result

        return self._transact(user_id, "harvest_all", action)

    def purchase_slot(self, user_id: str, slot_id: int) -> Dict[str, Any]:
        return self._transact(
            user_id, "purchase_slot", lambda s, now: slots.purchase_slot(s, slot_id), audit=True
        )

    # =========================================================================
    # Market and shop
    # =========================================================================

    def market_board(self) -> List[Dict[str, Any]]:
        return market_prices(self.clock())

    def sell_all(self, user_id: str) -> Dict[str, Any]:
        def action(state: FarmState, now: int) -> Dict[str, Any]:
            result = storage.sell_all(state, now)
            if result["success"]:
                daily_tasks.update_progress(state.daily_tasks, TaskAction.SELL, 1)
                daily_tasks.update_progress(state.daily_tasks, TaskAction.EARN_PTS, result["total"])
            return result

        result = self._transact(user_id, "sell_all", action, audit=True)

        if result.get("success"):
            referrer_id = self._require(user_id).user.referral_id
            if referrer_id:
                self.record_referral_sale(referrer_id, user_id, result["total"])
        return result

    def record_referral_sale(self, referrer_id: str, referral_id: str, sale_amount: int) -> Dict[str, Any]:
        return self._credit_upline(
            referrer_id,
            referral_id,
            "record_sale",
            lambda s, now: affiliate.record_sale(s, referral_id, sale_amount),
        )

    def shop_items(self, user_id: str) -> List[Dict[str, Any]]:
        return self._read(user_id, lambda s, now: shop.shop_items(s))

    def buy_item(self, user_id: str, item_id: str) -> Dict[str, Any]:
        return self._transact(user_id, "buy_item", lambda s, now: shop.buy_item(s, item_id, now), audit=True)

    def use_item(self, user_id: str, item_id: str) -> Dict[str, Any]:
        return self._transact(user_id, "use_item", lambda s, now: buffs.use_item(s, item_id, now))

    def activate_booster(self, user_id: str) -> Dict[str, Any]:
        """Price booster earned by watching an ad."""

        def action(state: FarmState, now: int) -> Dict[str, Any]:
            expiry = buffs.activate(state.active_buffs, BuffType.PRICE_BOOSTER, PRICE_BOOSTER_DURATION, now)
            daily_tasks.update_progress(state.daily_tasks, TaskAction.WATCH_AD, 1)
            return {"success": True, "message": "Price booster active for 1 hour!", "expires_at": expiry}

        return self._transact(user_id, "activate_booster", action)

    # =========================================================================
    # Ads and social events
    # =========================================================================

    def _task_event(self, user_id: str, task_action: TaskAction, message: str) -> Dict[str, Any]:
        def action(state: FarmState, now: int) -> Dict[str, Any]:
            moved = daily_tasks.update_progress(state.daily_tasks, task_action, 1)
            return {"success": True, "message": message, "tasks": moved}

        return self._transact(user_id, task_action.value.lower(), action)

    def on_ad_watched(self, user_id: str) -> Dict[str, Any]:
        return self._task_event(user_id, TaskAction.WATCH_AD, "Thanks for watching!")

    def on_friend_invited(self, user_id: str) -> Dict[str, Any]:
        return self._task_event(user_id, TaskAction.INVITE_FRIEND, "Friend invited!")

    def on_join_channel(self, user_id: str) -> Dict[str, Any]:
        return self._task_event(user_id, TaskAction.JOIN_CHANNEL, "Welcome to the channel!")

    # =========================================================================
    # Daily tasks
    # =========================================================================

    def daily_task_overview(self, user_id: str) -> Dict[str, Any]:
        return self._read(user_id, lambda s, now: {
            "tasks": s.daily_tasks,
            "stats": daily_tasks.task_stats(s),
            "last_daily_reset": s.user.last_daily_reset,
        })

    def claim_daily_task(self, user_id: str, task_id: str) -> Dict[str, Any]:
        return self._transact(
            user_id, "claim_daily_task", lambda s, now: daily_tasks.claim_task(s, task_id), audit=True
        )

    def claim_full_bonus(self, user_id: str) -> Dict[str, Any]:
        return self._transact(
            user_id, "claim_full_bonus", lambda s, now: daily_tasks.claim_full_bonus(s), audit=True
        )

    # =========================================================================
    # Lucky spin
    # =========================================================================

    def start_spin(self, user_id: str, paid: bool) -> Dict[str, Any]:
        return self._transact(
            user_id,
            "paid_spin" if paid else "free_spin",
            lambda s, now: spin.start_spin(s, paid, now, self.rng, self.paid_spin_reveal_ms),
            audit=paid,
        )

    def claim_free_spin_reward(self, user_id: str) -> Dict[str, Any]:
        return self._transact(user_id, "claim_spin", lambda s, now: spin.claim_free_reward(s, now), audit=True)

    def close_spin(self, user_id: str) -> Dict[str, Any]:
        return self._transact(user_id, "close_spin", lambda s, now: spin.close_spin(s))

    # =========================================================================
    # Withdrawals
    # =========================================================================

    def request_withdrawal(
        self,
        user_id: str,
        amount_pts: int,
        method: WithdrawMethod,
        destination: str,
    ) -> Dict[str, Any]:
        def action(state: FarmState, now: int) -> Dict[str, Any]:
            locked = withdrawals.locked_destination(state.user, method)
            if locked is not None and locked != destination:
                return {"success": False, "message": f"Withdrawals via {method.value} are locked to {locked}"}

            return withdrawals.request_withdrawal(
                state, amount_pts, method, destination, now, self.ton_withdraw_fee
            )

        result = self._transact(user_id, "request_withdrawal", action)
        if result.get("success"):
            entry = result["withdrawal"]
            logger.info(
                f"[WITHDRAW] {entry.id} for {user_id}: {entry.amount_pts} PTS -> "
                f"{entry.net_usdt:.6f} USDT via {entry.method.value}"
            )
        return result

    def list_withdrawals(self, user_id: str) -> List[Any]:
        return self._read(user_id, lambda s, now: s.withdrawals)

    def settle_withdrawal(self, user_id: str, withdrawal_id: str, status: WithdrawStatus) -> Dict[str, Any]:
        result = self._transact(
            user_id,
            "settle_withdrawal",
            lambda s, now: withdrawals.settle_withdrawal(s, withdrawal_id, status, now),
        )
        if result.get("success"):
            logger.info(f"[WITHDRAW] {withdrawal_id} for {user_id} -> {status.value}")
        return result

    # =========================================================================
    # Affiliate
    # =========================================================================

    def affiliate_overview(self, user_id: str) -> Dict[str, Any]:
        return self._read(user_id, lambda s, now: {
            "stats": affiliate.affiliate_stats(s, self.bot_username),
            "referrals": s.referrals,
        })

    def claim_commission(self, user_id: str) -> Dict[str, Any]:
        return self._transact(
            user_id, "claim_commission", lambda s, now: affiliate.claim_commission(s), audit=True
        )

    # =========================================================================
    # Scheduled ticks
    # =========================================================================

    def _tick(
        self,
        name: str,
        due: Callable[[FarmState, int], bool],
        step: Callable[[FarmState, int], None],
    ) -> int:
        """
        Run one step over every loaded player with something due.

        Idle aggregates are checked in place and never copied. Returns how
        many players changed.
        """
        changed = 0
        for user_id in list(self._states.keys()):
            try:
                with self._lock_for(user_id):
                    current = self._states.get(user_id)
                    now = self.clock()
                    if current is None or not due(current, now):
                        continue
                    draft = current.model_copy(deep=True)
                    step(draft, now)
                    if self._commit(user_id, current, draft):
                        changed += 1
            except Exception as e:
                logger.exception(f"[SCHEDULER] {name} tick failed for {user_id}: {e}")
        return changed

    def tick_growth(self) -> int:
        def step(state: FarmState, now: int) -> None:
            slots.advance_growth(state.slots, now)
            spin.settle_due(state, now)

        return self._tick("growth", growth_due, step)

    def tick_buff_sweep(self) -> int:
        return self._tick("buff_sweep", buffs_due, lambda s, now: buffs.sweep_expired(s.active_buffs, now))

    def tick_daily_reset(self) -> int:
        return self._tick("daily_reset", reset_due, lambda s, now: daily_tasks.reset_if_new_day(s, now))


def growth_due(state: FarmState, now: int) -> bool:
    """A crop has ripened or a paid spin is ready to reveal."""
    if any(slots.is_ripe(slot, now) for slot in state.slots):
        return True
    pending = state.spin
    return (
        pending.pending_reward is not None
        and pending.is_paid
        and (pending.reveal_at is None or pending.reveal_at <= now)
    )


def buffs_due(state: FarmState, now: int) -> bool:
    return any(expiry <= now for expiry in state.active_buffs.values())


def reset_due(state: FarmState, now: int) -> bool:
    return daily_tasks.needs_reset(state.user.last_daily_reset, now)


_engine: Optional[GameEngine] = None
_engine_guard = threading.Lock()


def get_engine() -> GameEngine:
    """Process-wide engine. FastAPI dependency; tests override it."""
    global _engine
    with _engine_guard:
        if _engine is None:
            _engine = GameEngine(get_document_store())
        return _engine
