import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config.game_constants import (
    DAILY_TASK_FULL_COMPLETION_REWARD,
    DAILY_TASKS_CONFIG,
    RARE_OR_BETTER,
)
from ..models.schemas import DailyTask, FarmState, Rarity, TaskAction
from .storage import add_tool

logger = logging.getLogger(__name__)


def initialize_tasks() -> List[DailyTask]:
    return [DailyTask(**config) for config in DAILY_TASKS_CONFIG]


def utc_date_string(now: int) -> str:
    """YYYY-MM-DD for a millisecond timestamp, in UTC."""
    return datetime.fromtimestamp(now / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def needs_reset(last_daily_reset: str, now: int) -> bool:
    return last_daily_reset != utc_date_string(now)


def reset_if_new_day(state: FarmState, now: int) -> bool:
    """Start a fresh task day when the UTC date has rolled over."""
    if not needs_reset(state.user.last_daily_reset, now):
        return False

    state.daily_tasks = initialize_tasks()
    state.user.daily_task_full_bonus_claimed = False
    state.user.last_daily_reset = utc_date_string(now)
    return True


def update_progress(
    tasks: List[DailyTask],
    action: TaskAction,
    amount: int = 1,
    rarity: Optional[Rarity] = None,
) -> List[str]:
    """
    Advance every open task listening for action.

    PLANT_RARE counts plantings, not units: it moves by exactly 1 and only
    for RARE or better crops.

    Returns:
        Ids of the tasks that moved
    """
    moved = []
    for task in tasks:
        if task.action != action or task.is_completed or task.is_claimed:
            continue

        if action == TaskAction.PLANT_RARE:
            if rarity not in RARE_OR_BETTER:
                continue
            task.current_progress += 1
        else:
            task.current_progress += amount

        moved.append(task.id)
    return moved


def find_task(tasks: List[DailyTask], task_id: str) -> Optional[DailyTask]:
    for task in tasks:
        if task.id == task_id:
            return task
    return None


def claim_task(state: FarmState, task_id: str) -> Dict[str, Any]:
    task = find_task(state.daily_tasks, task_id)
    if task is None:
        return {"success": False, "message": "Task not found"}
    if not task.is_completed:
        return {"success": False, "message": "Task not completed yet"}
    if task.is_claimed:
        return {"success": False, "message": "Already claimed"}

    task.is_claimed = True
    state.user.balance += task.reward_pts

    return {"success": True, "message": f"Claimed {task.reward_pts} PTS!", "reward": task.reward_pts}


def claim_full_bonus(state: FarmState) -> Dict[str, Any]:
    if state.user.daily_task_full_bonus_claimed:
        return {"success": False, "message": "Already claimed"}
    if not all(task.is_completed and task.is_claimed for task in state.daily_tasks):
        return {"success": False, "message": "Complete all tasks first"}

    reward_pts = DAILY_TASK_FULL_COMPLETION_REWARD["pts"]
    reward_item = DAILY_TASK_FULL_COMPLETION_REWARD["item"]

    state.user.balance += reward_pts
    state.user.daily_task_full_bonus_claimed = True
    add_tool(state, reward_item)

    return {
        "success": True,
        "message": f"Full completion bonus: {reward_pts} PTS + {reward_item}!",
        "reward": reward_pts,
        "item": reward_item,
    }


def task_stats(state: FarmState) -> Dict[str, Any]:
    tasks = state.daily_tasks
    total = len(tasks)
    completed = sum(1 for t in tasks if t.is_completed)
    claimed = sum(1 for t in tasks if t.is_claimed)
    full_bonus_claimed = state.user.daily_task_full_bonus_claimed

    return {
        "total": total,
        "completed": completed,
        "claimed": claimed,
        "remaining": total - completed,
        "progress_percent": round(completed / total * 100) if total else 0,
        "total_reward_claimed": sum(t.reward_pts for t in tasks if t.is_claimed),
        "full_bonus_claimed": full_bonus_claimed,
        "can_claim_full_bonus": claimed == total and not full_bonus_claimed,
    }
