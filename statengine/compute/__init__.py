# Statify Engine - Compute Package
"""Procedure operators, their registry and the worker executor."""

from statengine.compute.executor import (
    CancellationToken,
    ComputeExecutor,
    RequestHandle,
    run_request,
)
from statengine.compute.registry import OperatorRegistry, default_registry
from statengine.compute.schemas import ProcedureRequest, ProcedureResponse

__all__ = [
    "CancellationToken",
    "ComputeExecutor",
    "RequestHandle",
    "run_request",
    "OperatorRegistry",
    "default_registry",
    "ProcedureRequest",
    "ProcedureResponse",
]
