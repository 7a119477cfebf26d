"""
Named backend actions for the warehouse dashboard.

Thin wrappers over RequestExecutor.execute. Read actions return the
payload's ``data`` field; mutating actions return the raw reply.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from bayboard.api_client import RequestExecutor

EASTERN = ZoneInfo("America/New_York")

# ===== READ ACTIONS =====
GET_BRANCHES = "getBranches"
GET_PICKERS = "getPickers"
GET_BAY_ASSIGNMENTS = "getBayAssignments"
GET_VERSION = "getVersion"
GET_STAGING_AREA = "getStagingArea"
GET_TRUCKS = "getTrucks"
GET_STAGE_RECORDS = "getStageRecords"
GET_DAILY_SUMMARY = "getDailySummary"
VERIFY_PIN = "verifyPin"

# ===== MUTATING ACTIONS =====
ADD_STAGE_RECORD = "addStageRecord"
UPDATE_STAGE_RECORD_FIELD = "updateStageRecordField"
DELETE_STAGE_RECORD = "deleteStageRecord"
UPDATE_BAY_ASSIGNMENTS = "updateBayAssignments"
ADD_PICKER = "addPicker"
CREATE_TRUCK = "createTruck"
UPDATE_TRUCK_STATUS = "updateTruckStatus"
CLEAR_BOARD = "clearBoard"


def unwrap(body: Any) -> Any:
    """Return the ``data`` field of a reply, or the reply itself if it has none."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def eastern_today(now: Optional[datetime] = None) -> str:
    """Current date in US Eastern time as YYYY-MM-DD (the backend's business day)."""
    now = now or datetime.now(EASTERN)
    return now.astimezone(EASTERN).date().isoformat()


class WarehouseApi:
    """
    Typed access to the backend's actions.

    Usage:
        api = WarehouseApi(executor)
        branches = await api.get_branches()
        await api.add_stage_record({"pickerID": 7, "branchNumber": 12, "pallets": 3})
    """

    def __init__(self, executor: RequestExecutor):
        self._executor = executor

    async def _read(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return unwrap(await self._executor.execute(action, params))

    # ===== READS =====

    async def get_branches(self) -> List[Dict[str, Any]]:
        return await self._read(GET_BRANCHES)

    async def get_pickers(self) -> List[Dict[str, Any]]:
        return await self._read(GET_PICKERS)

    async def get_bay_assignments(self) -> Dict[str, Any]:
        return await self._read(GET_BAY_ASSIGNMENTS)

    async def get_version(self) -> Any:
        return await self._read(GET_VERSION)

    async def get_staging_area(self) -> List[Dict[str, Any]]:
        return await self._read(GET_STAGING_AREA)

    async def get_trucks(self) -> List[Dict[str, Any]]:
        return await self._read(GET_TRUCKS)

    async def get_stage_records(self, day: Optional[date] = None) -> List[Dict[str, Any]]:
        params = {"date": day.isoformat()} if day else None
        return await self._read(GET_STAGE_RECORDS, params)

    async def get_daily_summary(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Summary for ``day``; defaults to today in Eastern time. Returns the whole reply."""
        day_str = day.isoformat() if day else eastern_today()
        return await self._executor.execute(GET_DAILY_SUMMARY, {"date": day_str})

    async def verify_pin(self, pin: str) -> bool:
        body = await self._executor.execute(VERIFY_PIN, {"pin": pin})
        return bool(body.get("valid"))

    # ===== WRITES =====

    async def add_stage_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._executor.execute(ADD_STAGE_RECORD, {"record": record})

    async def update_stage_record_field(
        self, row_index: int, field: str, value: Any
    ) -> Dict[str, Any]:
        return await self._executor.execute(
            UPDATE_STAGE_RECORD_FIELD,
            {"rowIndex": row_index, "field": field, "value": value},
        )

    async def delete_stage_record(self, row_index: int) -> Dict[str, Any]:
        return await self._executor.execute(DELETE_STAGE_RECORD, {"rowIndex": row_index})

    async def update_bay_assignments(self, assignments: Dict[str, Any]) -> Dict[str, Any]:
        return await self._executor.execute(UPDATE_BAY_ASSIGNMENTS, {"assignments": assignments})

    async def add_picker(self, picker: Dict[str, Any]) -> Dict[str, Any]:
        return await self._executor.execute(ADD_PICKER, {"picker": picker})

    async def create_truck(self, truck: Dict[str, Any]) -> Dict[str, Any]:
        return await self._executor.execute(CREATE_TRUCK, {"truck": truck})

    async def update_truck_status(self, truck_id: Any, status: str) -> Dict[str, Any]:
        return await self._executor.execute(
            UPDATE_TRUCK_STATUS, {"truckId": truck_id, "status": status}
        )

    async def clear_board(self) -> Dict[str, Any]:
        return await self._executor.execute(CLEAR_BOARD)
