"""HTTP surface for the presentation layer.

Authentication is handled upstream; the gateway forwards the caller's
identity in the X-User-Id, X-User-Role and X-Organization-Id headers.
Every endpoint except the task status update is a read or a recompute
trigger, and none of them waits on the anchor poller or the chain.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from taskchain.models.task import EmployeeRole, TaskStatus
from taskchain.service import TaskchainService

router = APIRouter()


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: EmployeeRole
    organization_id: str

    @property
    def is_admin(self) -> bool:
        return self.role == EmployeeRole.ADMIN


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


def get_service(request: Request) -> TaskchainService:
    return request.app.state.service


def get_caller(
    x_user_id: str = Header(...),
    x_user_role: str = Header(default="employee"),
    x_organization_id: str = Header(...),
) -> Caller:
    try:
        role = EmployeeRole(x_user_role)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role: {x_user_role}") from None
    return Caller(user_id=x_user_id, role=role, organization_id=x_organization_id)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return caller


def _require_visible_employee(
    service: TaskchainService, caller: Caller, employee_id: str,
) -> None:
    """Employees may only see themselves; admins see their organization."""
    employee = service.get_employee(employee_id)
    if employee is None or employee.organization_id != caller.organization_id:
        raise HTTPException(status_code=404, detail="Employee not found")
    if not caller.is_admin and caller.user_id != employee_id:
        raise HTTPException(status_code=403, detail="Not allowed to view this employee")


# ── Scoring & insights ───────────────────────────────────────────────────────

@router.get("/ai/insights")
def get_insights(
    caller: Caller = Depends(require_admin),
    service: TaskchainService = Depends(get_service),
):
    return {"insights": service.get_insights(caller.organization_id).to_dict()}


@router.get("/ai/productivity-rankings")
def get_productivity_rankings(
    caller: Caller = Depends(require_admin),
    service: TaskchainService = Depends(get_service),
):
    ranking = service.get_rankings(caller.organization_id)
    return {"employees": [r.to_dict() for r in ranking]}


@router.post("/ai/recalculate-scores")
def recalculate_scores(
    caller: Caller = Depends(require_admin),
    service: TaskchainService = Depends(get_service),
):
    result = service.recalculate_scores(caller.organization_id)
    if not result.success:
        raise HTTPException(status_code=500, detail="; ".join(result.errors))
    return result.data


@router.get("/ai/employee-score/{employee_id}")
def get_employee_score(
    employee_id: str,
    caller: Caller = Depends(get_caller),
    service: TaskchainService = Depends(get_service),
):
    _require_visible_employee(service, caller, employee_id)
    result = service.get_employee_score(employee_id)
    if not result.success:
        raise HTTPException(status_code=404, detail="; ".join(result.errors))
    return result.data


@router.get("/ai/task-suggestions")
def get_task_suggestions(
    caller: Caller = Depends(require_admin),
    service: TaskchainService = Depends(get_service),
):
    suggestions = service.suggest_assignees(caller.organization_id)
    return {"suggestions": [s.to_dict() for s in suggestions]}


# ── Blockchain audit trail ───────────────────────────────────────────────────

@router.get("/blockchain/organization-chain-log")
def get_organization_chain_log(
    caller: Caller = Depends(require_admin),
    service: TaskchainService = Depends(get_service),
):
    entries = service.get_organization_chain_log(caller.organization_id)
    return {"logs": [service.describe_entry(e) for e in entries]}


@router.get("/blockchain/user-chain-log/{employee_id}")
def get_user_chain_log(
    employee_id: str,
    caller: Caller = Depends(get_caller),
    service: TaskchainService = Depends(get_service),
):
    _require_visible_employee(service, caller, employee_id)
    entries = service.get_user_chain_log(employee_id)
    return {"dbLogs": [service.describe_entry(e) for e in entries]}


@router.get("/blockchain/reconciliation")
def get_reconciliation(
    caller: Caller = Depends(require_admin),
    service: TaskchainService = Depends(get_service),
):
    return service.reconcile(caller.organization_id).to_dict()


# ── Task status (completion hook) ────────────────────────────────────────────

@router.patch("/tasks/{task_id}")
def update_task(
    task_id: str,
    body: TaskStatusUpdate,
    caller: Caller = Depends(get_caller),
    service: TaskchainService = Depends(get_service),
):
    result = service.update_task_status(task_id, body.status, caller.organization_id)
    if not result.success:
        status_code = 404 if result.not_found else 500
        raise HTTPException(status_code=status_code, detail="; ".join(result.errors))
    return result.data


def create_app(service: TaskchainService, run_poller: bool = True) -> FastAPI:
    """Build the API app around a service; optionally run the anchor poller."""
    app = FastAPI(title="taskchain API", version="0.1.0")
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")

    if run_poller:
        @app.on_event("startup")
        def _start_poller() -> None:
            service.start()

        @app.on_event("shutdown")
        def _stop_poller() -> None:
            service.stop()

    @app.get("/")
    def root():
        return {"app": "taskchain", "docs": "/docs"}

    return app
