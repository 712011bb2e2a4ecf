"""
Inventory operations shared by the inventory and blood-request routers.
"""
import logging
from typing import List, Optional

from database import db
from .errors import ServiceError
from .helpers import BLOOD_TYPES, MINIMUM_STOCK, now_iso, stock_level, today_str

logger = logging.getLogger(__name__)


class InsufficientStockError(ServiceError):
    def __init__(self, blood_type: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock. Only {available} units of {blood_type} available"
        )
        self.blood_type = blood_type
        self.requested = requested
        self.available = available


class ReservationConflictError(ServiceError):
    """Raised when units picked for a reservation were claimed by someone else first."""

    def __init__(self, blood_type: str):
        super().__init__(f"Blood units of {blood_type} changed while reserving, please retry")
        self.blood_type = blood_type


async def select_fefo_units(blood_type: str, units_needed: int) -> List[dict]:
    """
    Pick available, unexpired units of ``blood_type`` that expire soonest
    until their summed ``units`` covers ``units_needed``.
    """
    candidates = await db.blood_inventory.find(
        {"blood_type": blood_type, "status": "available", "expiry_date": {"$gte": today_str()}},
        {"_id": 0},
    ).sort("expiry_date", 1).to_list(1000)

    selected, covered = [], 0
    for unit in candidates:
        if covered >= units_needed:
            break
        selected.append(unit)
        covered += unit.get("units", 1)

    if covered < units_needed:
        raise InsufficientStockError(blood_type, units_needed, covered)
    return selected


async def reserve_units(blood_type: str, units_needed: int, reserved_for: Optional[str] = None) -> List[dict]:
    """
    Reserve units in FEFO order. Each unit is claimed only while still
    ``available``; if any claim misses, the units claimed so far are
    released and ``ReservationConflictError`` is raised.
    """
    selected = await select_fefo_units(blood_type, units_needed)
    claimed = []
    for unit in selected:
        result = await db.blood_inventory.update_one(
            {"id": unit["id"], "status": "available"},
            {"$set": {"status": "reserved", "reserved_for": reserved_for, "updated_at": now_iso()}},
        )
        if result.modified_count == 0:
            await release_units(claimed)
            logger.warning("Reservation of %s for %s lost unit %s to another request", blood_type, reserved_for, unit["id"])
            raise ReservationConflictError(blood_type)
        claimed.append(unit["id"])

    logger.info("Reserved %d inventory records of %s for %s", len(claimed), blood_type, reserved_for)
    return selected


async def release_units(ids: List[str]):
    if ids:
        await set_units_status(ids, "available", clear_reservation=True)


async def set_units_status(ids: List[str], status: str, clear_reservation: bool = False):
    changes = {"status": status, "updated_at": now_iso()}
    if clear_reservation:
        changes["reserved_for"] = None
    await db.blood_inventory.update_many({"id": {"$in": ids}, "status": "reserved"}, {"$set": changes})


async def available_units_by_type() -> dict:
    pipeline = [
        {"$match": {"status": "available", "expiry_date": {"$gte": today_str()}}},
        {"$group": {"_id": "$blood_type", "units": {"$sum": "$units"}}},
    ]
    rows = await db.blood_inventory.aggregate(pipeline).to_list(20)
    totals = {blood_type: 0 for blood_type in BLOOD_TYPES}
    totals.update({row["_id"]: row["units"] for row in rows if row["_id"]})
    return totals


async def low_stock_report() -> List[dict]:
    totals = await available_units_by_type()
    report = []
    for blood_type, units in totals.items():
        minimum = MINIMUM_STOCK[blood_type]
        if units < minimum:
            report.append({
                "blood_type": blood_type,
                "current_units": units,
                "minimum_required": minimum,
                "level": stock_level(units, blood_type),
            })
    return report
