from typing import Dict, Iterable, List, Optional

from workforce.store import EMPLOYEES, RecordStore, Row


class EmployeeDirectory:
    """Read-only view over the employees table."""

    def __init__(self, store: RecordStore):
        self._store = store

    async def get(self, employee_id: int) -> Optional[Row]:
        return (await self._store.select(EMPLOYEES, {"id": employee_id}, limit=1)).first()

    async def active(self) -> List[Row]:
        return (await self._store.select(EMPLOYEES, {"status": "active"}, order_by=["id"])).unwrap()

    async def admins(self) -> List[Row]:
        return (await self._store.select(EMPLOYEES, {"role": "admin", "status": "active"}, order_by=["id"])).unwrap()

    async def by_ids(self, ids: Iterable[int]) -> Dict[int, Row]:
        ids = list(ids)
        if not ids:
            return {}
        rows = (await self._store.select(EMPLOYEES, {"id__in": ids})).unwrap()
        return {row["id"]: row for row in rows}
