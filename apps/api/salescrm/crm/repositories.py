from __future__ import annotations

from typing import Any

from fastapi import Depends
from sqlalchemy import Engine

import salescrm.models  # noqa: F401
from salescrm.core.database import get_engine
from salescrm.platform.security.repository import SafeRepository


class CustomerRepository(SafeRepository):
    table = "customers"

    def all_ids(self, *, batch_size: int = 500) -> list[str]:
        ids: list[str] = []
        offset = 0
        while True:
            page = self.find_all(limit=batch_size, offset=offset)
            ids.extend(str(row["id"]) for row in page)
            if len(page) < batch_size:
                return ids
            offset += batch_size

    def find_by_owner(self, owner_id: str) -> list[dict[str, Any]]:
        return self.find_by_field("owner_id", owner_id)

    def count_by_status(self, statuses: list[str]) -> dict[str, int]:
        return {status: self.count({"status": status}) for status in statuses}


class CustomerScoreRepository(SafeRepository):
    table = "customer_scores"

    def queue_for_customers(self, customer_ids: list[str], *, requested_by: str) -> list[dict[str, Any]]:
        """Queue one scoring request per customer, all or nothing."""

        def _queue(repo: CustomerScoreRepository) -> list[dict[str, Any]]:
            return [
                repo.create({"customer_id": customer_id, "status": "queued", "requested_by": requested_by})
                for customer_id in customer_ids
            ]

        return self.transaction(_queue)


def get_customer_repository(engine: Engine = Depends(get_engine)) -> CustomerRepository:
    return CustomerRepository(engine)


def get_customer_score_repository(engine: Engine = Depends(get_engine)) -> CustomerScoreRepository:
    return CustomerScoreRepository(engine)
