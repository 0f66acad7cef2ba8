from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from salescrm.core.auth import Principal
from salescrm.core.rbac import require_permission, require_role
from salescrm.core.roles import UserRole, is_manager
from salescrm.crm.repositories import (
    CustomerRepository,
    CustomerScoreRepository,
    get_customer_repository,
    get_customer_score_repository,
)
from salescrm.crm.schemas import (
    AutoScoreRequest,
    AutoScoreResponse,
    CustomerCreate,
    CustomerRead,
    CustomerSummaryRead,
    CustomerUpdate,
)


CUSTOMER_STATUSES = ["private", "public_pool"]
ANY_ROLE = (UserRole.ADMIN, UserRole.SALES_MANAGER, UserRole.FINANCE, UserRole.SALES_REP)
SALES_ROLES = (UserRole.ADMIN, UserRole.SALES_MANAGER, UserRole.SALES_REP)

require_any_role = require_role(*ANY_ROLE)
require_sales_role = require_role(*SALES_ROLES)

customers_router = APIRouter(prefix="/api/customers", tags=["crm.customers"])
agent_router = APIRouter(prefix="/api/agent", tags=["crm.agent"])


def _get_customer_or_404(repo: CustomerRepository, customer_id: str) -> dict[str, Any]:
    row = repo.find_by_id(customer_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
    return row


@customers_router.get("", response_model=list[CustomerRead])
def list_customers(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    _principal: Principal = Depends(require_any_role),
    repo: CustomerRepository = Depends(get_customer_repository),
) -> list[dict[str, Any]]:
    return repo.find_all(limit=limit, offset=offset)


@customers_router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(
    customer_id: str,
    _principal: Principal = Depends(require_any_role),
    repo: CustomerRepository = Depends(get_customer_repository),
) -> dict[str, Any]:
    return _get_customer_or_404(repo, customer_id)


@customers_router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    dto: CustomerCreate,
    principal: Principal = Depends(require_sales_role),
    repo: CustomerRepository = Depends(get_customer_repository),
) -> dict[str, Any]:
    return repo.create({**dto.model_dump(), "owner_id": principal.actor_id})


@customers_router.patch("/{customer_id}", response_model=CustomerRead)
def update_customer(
    customer_id: str,
    dto: CustomerUpdate,
    _principal: Principal = Depends(require_sales_role),
    repo: CustomerRepository = Depends(get_customer_repository),
) -> dict[str, Any]:
    changes = dto.model_dump(exclude_unset=True)
    if changes:
        changes["updated_at"] = datetime.now(timezone.utc)
    row = repo.update(customer_id, changes)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
    return row


@customers_router.delete("/{customer_id}", status_code=status.HTTP_200_OK)
def delete_customer(
    customer_id: str,
    _principal: Principal = Depends(require_role(UserRole.ADMIN)),
    repo: CustomerRepository = Depends(get_customer_repository),
) -> dict[str, bool]:
    if not repo.delete(customer_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
    return {"success": True}


@agent_router.post(
    "/auto-score",
    response_model=AutoScoreResponse,
    dependencies=[Depends(require_any_role), Depends(require_permission("agent:scoring"))],
)
def auto_score(
    dto: AutoScoreRequest,
    principal: Principal = Depends(require_any_role),
    customers: CustomerRepository = Depends(get_customer_repository),
    scores: CustomerScoreRepository = Depends(get_customer_score_repository),
) -> AutoScoreResponse:
    if dto.customer_ids is not None:
        customer_ids = [customer_id for customer_id in dict.fromkeys(dto.customer_ids) if customers.exists("id", customer_id)]
    elif is_manager(principal.role):
        customer_ids = customers.all_ids()
    else:
        customer_ids = [row["id"] for row in customers.find_by_owner(principal.actor_id)]

    queued = scores.queue_for_customers(customer_ids, requested_by=principal.actor_id)
    return AutoScoreResponse(queued=len(queued), score_request_ids=[str(row["id"]) for row in queued])


@agent_router.get(
    "/customer-summary",
    response_model=CustomerSummaryRead,
    dependencies=[Depends(require_any_role), Depends(require_permission("agent:analyze"))],
)
def customer_summary(repo: CustomerRepository = Depends(get_customer_repository)) -> CustomerSummaryRead:
    return CustomerSummaryRead(total=repo.count(), by_status=repo.count_by_status(CUSTOMER_STATUSES))
