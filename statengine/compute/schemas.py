# Statify Engine - Compute Schemas
# Pydantic request/response envelopes exchanged with worker units

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from statengine.core.exceptions import BaseApplicationException, ErrorCode
from statengine.core.logging import generate_request_id
from statengine.core.serialization import to_jsonable
from statengine.stats.data_model import ProcedureResult


GENERIC_FAILURE_MESSAGE = "Worker returned an error."


class ProcedureRequest(BaseModel):
    """
    One analysis request.

    ``data`` maps each variable name (including the grouping variable) to
    its raw column; the engine treats it as a read-only snapshot.
    """

    model_config = ConfigDict(extra="ignore")

    request_id: str = Field(default_factory=generate_request_id)
    procedure: str = Field(..., min_length=1, description="Registered procedure name")
    variables: list[dict[str, Any]] = Field(default_factory=list)
    data: dict[str, list[Any]] = Field(default_factory=dict)
    weights: Optional[list[Any]] = None
    grouping_variable: Optional[dict[str, Any]] = None
    pairs: list[tuple[str, str]] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("procedure")
    @classmethod
    def normalize_procedure(cls, v: str) -> str:
        return v.strip().lower().replace("-", "_")


class ProcedureResponse(BaseModel):
    """``success``/``error`` envelope around the result tables."""

    success: bool
    request_id: Optional[str] = None
    procedure: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    tables: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    duration_ms: Optional[float] = None

    @classmethod
    def from_result(
        cls,
        result: ProcedureResult,
        request_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> "ProcedureResponse":
        data = result.to_dict()
        return cls(
            success=True,
            request_id=request_id,
            procedure=result.procedure,
            tables=data["tables"],
            metadata=data["metadata"],
            output=data.get("output"),
            duration_ms=duration_ms,
        )

    @classmethod
    def failure(
        cls,
        error: Exception,
        request_id: Optional[str] = None,
        procedure: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> "ProcedureResponse":
        """Application errors keep their message; anything else is generic."""
        if isinstance(error, BaseApplicationException):
            message = error.message
            code = error.error_code.value
            metadata = to_jsonable(error.to_dict())
        else:
            message = GENERIC_FAILURE_MESSAGE
            code = ErrorCode.PROCEDURE_FAILED.value
            metadata = {"exception": type(error).__name__}
        return cls(
            success=False,
            request_id=request_id,
            procedure=procedure,
            error=message,
            error_code=code,
            metadata=metadata,
            duration_ms=duration_ms,
        )
