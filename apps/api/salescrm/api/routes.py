from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from salescrm.authz.api import admin_router
from salescrm.core.auth import Principal
from salescrm.core.config import get_settings
from salescrm.core.rbac import require_permission, require_principal
from salescrm.core.roles import level_of
from salescrm.crm.api import agent_router, customers_router
from salescrm.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(customers_router)
router.include_router(agent_router)
router.include_router(admin_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(principal: Principal = Depends(require_principal)) -> dict[str, str | int]:
    return {
        "actor_id": principal.actor_id,
        "display_name": principal.display_name,
        "role": principal.role.value,
        "role_level": level_of(principal.role),
    }


def _require_metrics_enabled() -> None:
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")


@router.get(
    "/metrics",
    tags=["system"],
    dependencies=[Depends(_require_metrics_enabled), Depends(require_permission("system:metrics"))],
)
def metrics() -> Response:
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
