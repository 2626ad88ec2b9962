from fastapi import BackgroundTasks, Depends, HTTPException, Request

from ats.errors import Forbidden
from ats.services.container import Services
from ats.services.identity_service import Principal, RequestMetadata


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_principal(request: Request, services: Services = Depends(get_services)) -> Principal | None:
    return services.identity.resolve(request.headers)


def require_principal(principal: Principal | None = Depends(get_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=401, detail="Missing actor identity")
    return principal


def require_admin(principal: Principal = Depends(require_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Administrator role required", context={"role": principal.role})
    return principal


def get_request_metadata(request: Request, background_tasks: BackgroundTasks) -> RequestMetadata:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return RequestMetadata(
        ip_address=ip,
        user_agent=request.headers.get("user-agent"),
        tasks=background_tasks,
    )
