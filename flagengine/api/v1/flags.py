from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field

from flagengine.api.dependencies import get_manager
from flagengine.core.errors import (
    FlagError,
    FlagExistsError,
    FlagNotFoundError,
    FlagValidationError,
)
from flagengine.core.flags.manager import FlagManager
from flagengine.core.flags.models import EvaluationContext, Reason, ensure_utc, utcnow
from flagengine.core.logging.structured import evaluation_log_context

router = APIRouter()


class EvaluationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_id: Optional[str] = Field(None, alias="subjectId")
    role: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    now: Optional[datetime] = None

    def to_context(self) -> EvaluationContext:
        return EvaluationContext(
            subject_id=self.subject_id,
            role=self.role,
            attributes=dict(self.attributes),
            now=ensure_utc(self.now) if self.now else utcnow(),
        )


class EvaluationResponse(BaseModel):
    flagKey: str
    value: Any = None
    isOn: bool
    reason: str
    error: Optional[str] = None
    bucket: Optional[int] = None
    failedCondition: Optional[int] = None


def _http_error(exc: FlagError) -> HTTPException:
    if isinstance(exc, FlagNotFoundError):
        status = 404
    elif isinstance(exc, FlagExistsError):
        status = 409
    elif isinstance(exc, FlagValidationError):
        status = 422
    else:
        status = 500
    return HTTPException(status_code=status, detail=exc.to_dict())


@router.get("")
async def list_flags(manager: FlagManager = Depends(get_manager)) -> Dict[str, Any]:
    flags = await manager.list_flags()
    return {"success": True, "data": [f.to_dict() for f in flags]}


@router.post("", status_code=201)
async def create_flag(
    payload: Dict[str, Any] = Body(...),
    manager: FlagManager = Depends(get_manager),
) -> Dict[str, Any]:
    try:
        flag = await manager.create_flag(payload)
    except FlagError as e:
        raise _http_error(e)
    return {"success": True, "data": flag.to_dict()}


@router.post("/evaluate")
async def evaluate_all(
    request: EvaluationRequest,
    manager: FlagManager = Depends(get_manager),
) -> Dict[str, Any]:
    with evaluation_log_context(subject_id=request.subject_id):
        results = manager.evaluate_all(request.to_context())
    return {
        "success": True,
        "data": {key: result.to_dict() for key, result in results.items()},
    }


@router.get("/{key}")
async def get_flag(key: str, manager: FlagManager = Depends(get_manager)) -> Dict[str, Any]:
    try:
        flag = await manager.get_flag(key)
    except FlagError as e:
        raise _http_error(e)
    return {"success": True, "data": flag.to_dict()}


@router.put("/{key}")
async def update_flag(
    key: str,
    changes: Dict[str, Any] = Body(...),
    manager: FlagManager = Depends(get_manager),
) -> Dict[str, Any]:
    try:
        flag = await manager.update_flag(key, changes)
    except FlagError as e:
        raise _http_error(e)
    return {"success": True, "data": flag.to_dict()}


@router.delete("/{key}", status_code=204)
async def delete_flag(key: str, manager: FlagManager = Depends(get_manager)) -> Response:
    try:
        await manager.delete_flag(key)
    except FlagError as e:
        raise _http_error(e)
    return Response(status_code=204)


@router.post("/{key}/toggle")
async def toggle_flag(key: str, manager: FlagManager = Depends(get_manager)) -> Dict[str, Any]:
    try:
        flag = await manager.toggle_flag(key)
    except FlagError as e:
        raise _http_error(e)
    state = "enabled" if flag.is_active else "disabled"
    return {
        "success": True,
        "data": flag.to_dict(),
        "message": f"Feature flag {state} successfully",
    }


@router.post("/{key}/evaluate", response_model=EvaluationResponse)
async def evaluate_flag(
    key: str,
    request: Optional[EvaluationRequest] = None,
    manager: FlagManager = Depends(get_manager),
) -> Dict[str, Any]:
    context = request.to_context() if request else EvaluationContext()
    with evaluation_log_context(subject_id=context.subject_id, flag_key=key):
        result = manager.evaluate(key, context)
    if result.reason == Reason.NOT_FOUND:
        raise _http_error(FlagNotFoundError(key))
    return result.to_dict()
