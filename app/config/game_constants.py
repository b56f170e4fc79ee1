"""
Game constants for the CyberFarm economy.
Growth times are real-time seconds; money is integer PTS.
"""

from app.models.schemas import BuffType, Plan, Rarity, TaskAction, TaskCategory

# 250,000 PTS = 1 USDT
EXCHANGE_RATE = 250_000

HOUR_MS = 3_600_000
DAY_MS = 24 * HOUR_MS

TOTAL_SLOTS = 12

# Crop catalog: growth_time in seconds, sell_price = base market price in PTS
CROPS = {
    # COMMON
    "Cabbage": {"rarity": Rarity.COMMON, "growth_time": 240, "sell_price": 20},
    "Spinach": {"rarity": Rarity.COMMON, "growth_time": 240, "sell_price": 25},
    "Water Spinach": {"rarity": Rarity.COMMON, "growth_time": 240, "sell_price": 30},
    "Corn": {"rarity": Rarity.COMMON, "growth_time": 240, "sell_price": 40},
    "Eggplant": {"rarity": Rarity.COMMON, "growth_time": 240, "sell_price": 50},
    # UNCOMMON
    "Tomato": {"rarity": Rarity.UNCOMMON, "growth_time": 300, "sell_price": 50},
    "Carrot": {"rarity": Rarity.UNCOMMON, "growth_time": 300, "sell_price": 55},
    "Broccoli": {"rarity": Rarity.UNCOMMON, "growth_time": 300, "sell_price": 60},
    "Potato": {"rarity": Rarity.UNCOMMON, "growth_time": 300, "sell_price": 65},
    "Cucumber": {"rarity": Rarity.UNCOMMON, "growth_time": 300, "sell_price": 70},
    # RARE
    "Asparagus": {"rarity": Rarity.RARE, "growth_time": 420, "sell_price": 120},
    "Bell Pepper": {"rarity": Rarity.RARE, "growth_time": 420, "sell_price": 150},
    "Cauliflower": {"rarity": Rarity.RARE, "growth_time": 420, "sell_price": 180},
    "Purple Cabbage": {"rarity": Rarity.RARE, "growth_time": 420, "sell_price": 200},
    "Oyster Mushroom": {"rarity": Rarity.RARE, "growth_time": 420, "sell_price": 250},
    # EPIC
    "Shiitake Mushroom": {"rarity": Rarity.EPIC, "growth_time": 480, "sell_price": 400},
    "Artichoke": {"rarity": Rarity.EPIC, "growth_time": 480, "sell_price": 500},
    "Bamboo Shoot": {"rarity": Rarity.EPIC, "growth_time": 480, "sell_price": 600},
    "Giant Pumpkin": {"rarity": Rarity.EPIC, "growth_time": 480, "sell_price": 800},
    # LEGENDARY
    "Wasabi": {"rarity": Rarity.LEGENDARY, "growth_time": 720, "sell_price": 2000},
    "Black Garlic": {"rarity": Rarity.LEGENDARY, "growth_time": 720, "sell_price": 4000},
    "Black Truffle": {"rarity": Rarity.LEGENDARY, "growth_time": 720, "sell_price": 8000},
}

# Per-tier drop probabilities (compared cumulatively, rarest first)
DROP_PROBABILITIES = {
    Rarity.LEGENDARY: 0.001,
    Rarity.EPIC: 0.005,
    Rarity.RARE: 0.02,
    Rarity.UNCOMMON: 0.06,
}

RARE_ESSENCE_MULTIPLIER = 1.2
GOLDEN_SCARECROW_MULTIPLIER = 3

# Growth time multipliers
SPEED_SOIL_FACTOR = 0.9
GROWTH_FERTILIZER_FACTOR = 0.8

RARE_OR_BETTER = (Rarity.RARE, Rarity.EPIC, Rarity.LEGENDARY)

# Membership plans
# FREE:     active 1,    shop 2-3,   disabled 4-12
# MORTGAGE: active 1-4,  shop 5-6,   disabled 7-12
# TENANT:   active 1-7,  shop 8-9,   disabled 10-12
# OWNER:    active 1-10, shop 11-12
PLAN_CONFIG = {
    Plan.FREE: {
        "name": "Free",
        "base_limit": 1,
        "purchasable_start": 2,
        "purchasable_end": 3,
        "storage": 100,
        "bonus_percent": 0,
        "is_ad_free": False,
        "usdt_price": 0,
    },
    Plan.MORTGAGE: {
        "name": "Mortgage",
        "base_limit": 4,
        "purchasable_start": 5,
        "purchasable_end": 6,
        "storage": 240,
        "bonus_percent": 5,
        "is_ad_free": False,
        "usdt_price": 20,
    },
    Plan.TENANT: {
        "name": "Tenant",
        "base_limit": 7,
        "purchasable_start": 8,
        "purchasable_end": 9,
        "storage": 500,
        "bonus_percent": 15,
        "is_ad_free": True,
        "usdt_price": 30,
    },
    Plan.OWNER: {
        "name": "Owner",
        "base_limit": 10,
        "purchasable_start": 11,
        "purchasable_end": 12,
        "storage": None,  # unlimited
        "bonus_percent": 30,
        "is_ad_free": True,
        "usdt_price": 50,
    },
}

# Extra plot prices, applied in purchase order within a plan's shop range
EXTRA_SLOT_PRICES = {
    "first": 10_000,
    "second": 750_000,
}

# Storage upgrades (Barn Upgrade)
STORAGE_CONFIG = {
    "upgrade_amount": 20,
    "cost": 5_000,
    "max_upgrades": 10,
}

YIELD_BOOSTER = {
    "id": "yield_booster",
    "name": "Yield Booster",
    "cost": 500_000,
    "double_chance": 0.25,
}

# Consumables: shop cost plus the buff they grant
CONSUMABLES = {
    "speed_soil": {
        "name": "Speed Soil",
        "cost": 500,
        "effect": BuffType.SPEED_SOIL,
        "duration": DAY_MS,
        "description": "-10% Growth Time (24h)",
    },
    "growth_fertilizer": {
        "name": "Growth Fertilizer",
        "cost": 1_000,
        "effect": BuffType.GROWTH_FERTILIZER,
        "duration": DAY_MS,
        "description": "-20% Growth Time (24h)",
    },
    "trade_permit": {
        "name": "Trade Permit",
        "cost": 1_500,
        "effect": BuffType.TRADE_PERMIT,
        "duration": DAY_MS,
        "description": "+10% Sell Prices (24h)",
    },
    "rare_essence": {
        "name": "Rare Essence",
        "cost": 2_000,
        "effect": BuffType.RARE_ESSENCE,
        "duration": DAY_MS,
        "description": "+20% Rare Drop Rate (24h)",
    },
    "golden_scarecrow": {
        "name": "Golden Scarecrow",
        "cost": 3_000,
        "effect": BuffType.GOLDEN_SCARECROW,
        "duration": DAY_MS,
        "description": "x3 Rare-Legend Chance (24h)",
    },
}

# Watching an ad boosts sell prices for an hour
PRICE_BOOSTER_DURATION = HOUR_MS

# Sell bonuses in whole percent
TRADE_PERMIT_PERCENT = 10
PRICE_BOOSTER_PERCENT = 15

# Market trend multipliers applied at sale time (percent)
TREND_SELL_MULTIPLIER = {
    "UP": 110,
    "DOWN": 90,
    "STABLE": 100,
}

MARKET_CONFIG = {
    "stable_percent": 70,
    "up_percent": 15,
    "max_change_bp": 1500,  # 15.00%
    "min_price_ratio": 0.7,
    "max_price_ratio": 1.3,
}

# Daily tasks
DAILY_TASKS_CONFIG = [
    {
        "id": "harvest_crops",
        "category": TaskCategory.FARMING,
        "action": TaskAction.HARVEST,
        "description": "Harvest 10 Crops",
        "target": 10,
        "reward_pts": 100,
    },
    {
        "id": "plant_rare",
        "category": TaskCategory.FARMING,
        "action": TaskAction.PLANT_RARE,
        "description": "Plant a Rare Crop",
        "target": 1,
        "reward_pts": 200,
    },
    {
        "id": "sell_market",
        "category": TaskCategory.ECONOMIC,
        "action": TaskAction.SELL,
        "description": "Sell at Market",
        "target": 1,
        "reward_pts": 150,
    },
    {
        "id": "earn_pts",
        "category": TaskCategory.ECONOMIC,
        "action": TaskAction.EARN_PTS,
        "description": "Earn 500 PTS",
        "target": 500,
        "reward_pts": 250,
    },
    {
        "id": "buy_item",
        "category": TaskCategory.ECONOMIC,
        "action": TaskAction.BUY_ITEM,
        "description": "Buy from Shop",
        "target": 1,
        "reward_pts": 100,
    },
    {
        "id": "watch_ads",
        "category": TaskCategory.SOCIAL,
        "action": TaskAction.WATCH_AD,
        "description": "Watch 3 Bonus Ads",
        "target": 3,
        "reward_pts": 300,
    },
    {
        "id": "invite_friend",
        "category": TaskCategory.SOCIAL,
        "action": TaskAction.INVITE_FRIEND,
        "description": "Invite a Friend",
        "target": 1,
        "reward_pts": 500,
    },
    {
        "id": "join_channel",
        "category": TaskCategory.SOCIAL,
        "action": TaskAction.JOIN_CHANNEL,
        "description": "Join Telegram Channel",
        "target": 1,
        "reward_pts": 200,
    },
]

DAILY_TASK_FULL_COMPLETION_REWARD = {
    "pts": 1_000,
    "item": "rare_essence",
}

# Affiliate program
AFFILIATE_CONFIG = {
    "commissions": {
        1: 0.10,  # direct referrals
        2: 0.05,  # referrals of referrals
    },
    # Flat PTS credited to the referrer when a referral buys a plan
    "upgrade_bonuses": {
        Plan.MORTGAGE: 50_000,
        Plan.TENANT: 100_000,
        Plan.OWNER: 250_000,
    },
    "min_claim_amount": 100,
}

# Lucky spin
SPIN_CONFIG = {
    "free_cooldown": HOUR_MS,
    "paid_cost": 150,
    "jackpot": 1_500,
}

# (weight, reward) in draw order
SPIN_PRIZE_POOL = [
    (0.1, {"type": "JACKPOT", "amount": 1_500, "icon": "🎰"}),
    (0.033, {"type": "HERB", "name": "Black Truffle", "rarity": Rarity.LEGENDARY, "icon": "🍄"}),
    (0.033, {"type": "HERB", "name": "Black Garlic", "rarity": Rarity.LEGENDARY, "icon": "🧄"}),
    (0.034, {"type": "HERB", "name": "Wasabi", "rarity": Rarity.LEGENDARY, "icon": "🟢"}),
    (0.125, {"type": "HERB", "name": "Giant Pumpkin", "rarity": Rarity.EPIC, "icon": "🎃"}),
    (0.125, {"type": "HERB", "name": "Bamboo Shoot", "rarity": Rarity.EPIC, "icon": "🎋"}),
    (0.125, {"type": "HERB", "name": "Artichoke", "rarity": Rarity.EPIC, "icon": "🥬"}),
    (0.125, {"type": "HERB", "name": "Shiitake Mushroom", "rarity": Rarity.EPIC, "icon": "🍄"}),
    (0.4, {"type": "HERB", "name": "Oyster Mushroom", "rarity": Rarity.RARE, "icon": "🍄"}),
    (0.4, {"type": "HERB", "name": "Purple Cabbage", "rarity": Rarity.RARE, "icon": "🥗"}),
    (0.4, {"type": "HERB", "name": "Cauliflower", "rarity": Rarity.RARE, "icon": "🥦"}),
    (0.4, {"type": "HERB", "name": "Bell Pepper", "rarity": Rarity.RARE, "icon": "🫑"}),
    (0.4, {"type": "HERB", "name": "Asparagus", "rarity": Rarity.RARE, "icon": "🌿"}),
    (1.2, {"type": "HERB", "name": "Cucumber", "rarity": Rarity.UNCOMMON, "icon": "🥒"}),
    (1.2, {"type": "HERB", "name": "Potato", "rarity": Rarity.UNCOMMON, "icon": "🥔"}),
    (1.2, {"type": "HERB", "name": "Broccoli", "rarity": Rarity.UNCOMMON, "icon": "🥦"}),
    (1.2, {"type": "HERB", "name": "Carrot", "rarity": Rarity.UNCOMMON, "icon": "🥕"}),
    (1.2, {"type": "HERB", "name": "Tomato", "rarity": Rarity.UNCOMMON, "icon": "🍅"}),
    (2, {"type": "HERB", "name": "Eggplant", "rarity": Rarity.COMMON, "icon": "🍆"}),
    (2, {"type": "HERB", "name": "Corn", "rarity": Rarity.COMMON, "icon": "🌽"}),
    (2, {"type": "HERB", "name": "Water Spinach", "rarity": Rarity.COMMON, "icon": "🥬"}),
    (2, {"type": "HERB", "name": "Spinach", "rarity": Rarity.COMMON, "icon": "🍃"}),
    (2, {"type": "HERB", "name": "Cabbage", "rarity": Rarity.COMMON, "icon": "🥬"}),
    (15, {"type": "COINS", "amount": 50, "icon": "🪙"}),
    (25, {"type": "COINS", "amount": 100, "icon": "💰"}),
    (15, {"type": "COINS", "amount": 200, "icon": "💎"}),
]

SPIN_FALLBACK_REWARD = {"type": "COINS", "amount": 100, "icon": "💰"}

# Withdrawals
WITHDRAW_CONFIG = {
    "min_new_user": 100,
    "min_returning_user": 1_000,
    "fee_faucetpay": 0.0,
    "ton_address_min_length": 10,
}

# Seeded server rolls: how far a client-reported random may drift
SERVER_ROLL_TOLERANCE = 0.1
