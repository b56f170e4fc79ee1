from pydantic import BaseModel, Field, computed_field
from typing import Annotated, List, Dict, Optional, Any, Union, Literal
from enum import Enum


class Plan(str, Enum):
    FREE = "FREE"
    MORTGAGE = "MORTGAGE"
    TENANT = "TENANT"
    OWNER = "OWNER"


class Rarity(str, Enum):
    COMMON = "COMMON"
    UNCOMMON = "UNCOMMON"
    RARE = "RARE"
    EPIC = "EPIC"
    LEGENDARY = "LEGENDARY"


class SlotStatus(str, Enum):
    DISABLED = "DISABLED"        # Locked by plan, needs an upgrade
    LOCKED_SHOP = "LOCKED_SHOP"  # Purchasable with PTS
    EMPTY = "EMPTY"
    GROWING = "GROWING"
    READY = "READY"


class BuffType(str, Enum):
    SPEED_SOIL = "SPEED_SOIL"
    GROWTH_FERTILIZER = "GROWTH_FERTILIZER"
    TRADE_PERMIT = "TRADE_PERMIT"
    PRICE_BOOSTER = "PRICE_BOOSTER"
    RARE_ESSENCE = "RARE_ESSENCE"
    GOLDEN_SCARECROW = "GOLDEN_SCARECROW"


class ItemType(str, Enum):
    CROP = "CROP"
    TOOL = "TOOL"


class Trend(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    STABLE = "STABLE"


class TaskCategory(str, Enum):
    FARMING = "FARMING"
    ECONOMIC = "ECONOMIC"
    SOCIAL = "SOCIAL"


class TaskAction(str, Enum):
    HARVEST = "HARVEST"
    PLANT_RARE = "PLANT_RARE"
    SELL = "SELL"
    EARN_PTS = "EARN_PTS"
    BUY_ITEM = "BUY_ITEM"
    WATCH_AD = "WATCH_AD"
    INVITE_FRIEND = "INVITE_FRIEND"
    JOIN_CHANNEL = "JOIN_CHANNEL"


class WithdrawMethod(str, Enum):
    FAUCETPAY = "FAUCETPAY"
    TON = "TON"


class WithdrawStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Static catalog entry
class CropConfig(BaseModel):
    name: str
    rarity: Rarity
    growth_time: float  # seconds
    sell_price: int


# Farm Models
class CropInstance(BaseModel):
    """A planted crop. growth_time is fixed at plant time."""
    name: str
    rarity: Rarity
    growth_time: float


class Slot(BaseModel):
    id: int
    status: SlotStatus
    crop: Optional[CropInstance] = None
    planted_at: Optional[int] = None  # ms since epoch
    is_purchased: bool = False


class InventoryItem(BaseModel):
    crop_name: str
    rarity: Rarity = Rarity.COMMON
    quantity: int = 0
    type: ItemType = ItemType.CROP


class DailyTask(BaseModel):
    id: str
    category: TaskCategory
    action: TaskAction
    description: str
    target: int
    current_progress: int = 0
    reward_pts: int
    reward_item: Optional[str] = None
    is_claimed: bool = False

    @computed_field
    @property
    def is_completed(self) -> bool:
        return self.current_progress >= self.target


class Referral(BaseModel):
    id: str
    username: str
    contribution: int = 0
    is_active: bool = False
    tier: Literal[1, 2]
    joined_at: int


class Withdrawal(BaseModel):
    id: str
    user_id: str
    amount_pts: int
    amount_usdt: float
    fee_pts: int
    net_usdt: float
    method: WithdrawMethod
    destination: str
    status: WithdrawStatus = WithdrawStatus.PENDING
    timestamp: int
    processed_at: Optional[int] = None

    model_config = {"frozen": True}


# Spin rewards: one variant per prize kind
class CoinsReward(BaseModel):
    type: Literal["COINS"] = "COINS"
    amount: int
    icon: str = ""


class HerbReward(BaseModel):
    type: Literal["HERB"] = "HERB"
    name: str
    rarity: Rarity
    icon: str = ""


class JackpotReward(BaseModel):
    type: Literal["JACKPOT"] = "JACKPOT"
    amount: int
    icon: str = ""


SpinReward = Annotated[
    Union[CoinsReward, HerbReward, JackpotReward],
    Field(discriminator="type"),
]


class SpinState(BaseModel):
    pending_reward: Optional[SpinReward] = None
    is_paid: bool = False
    reveal_at: Optional[int] = None  # paid spins are granted once this passes


class User(BaseModel):
    id: str
    username: str
    plan: Plan = Plan.FREE
    balance: int = 0
    storage_used: int = 0
    storage_max: Optional[int] = 100  # None = unlimited
    extra_storage: int = 0
    xp: int = 0
    has_yield_booster: bool = False
    total_harvests: int = 0
    total_sales: int = 0
    last_spin_time: int = 0
    last_daily_reset: str = ""
    daily_task_full_bonus_claimed: bool = False
    has_withdrawn: bool = False
    wallet_address: Optional[str] = None
    wallet_email: Optional[str] = None
    referral_id: Optional[str] = None
    pending_commission: int = 0
    total_commission_earned: int = 0
    created_at: int = 0


class FarmState(BaseModel):
    """The whole per-player aggregate. Every engine operation works on a copy of it."""
    user: User
    slots: List[Slot]
    inventory: Dict[str, InventoryItem] = {}
    active_buffs: Dict[BuffType, int] = {}
    daily_tasks: List[DailyTask] = []
    referrals: List[Referral] = []
    withdrawals: List[Withdrawal] = []
    spin: SpinState = SpinState()

    def slot(self, slot_id: int) -> Optional[Slot]:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None


# Request Models
class TelegramLoginRequest(BaseModel):
    init_data: str
    start_param: Optional[str] = None


class SpinRequest(BaseModel):
    paid: bool = False


class WithdrawalCreate(BaseModel):
    amount_pts: int = Field(gt=0)
    method: WithdrawMethod
    destination: str


class PlanChangeRequest(BaseModel):
    plan: Plan


class WithdrawalStatusUpdate(BaseModel):
    status: WithdrawStatus


# API Response Models
class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None
