from __future__ import annotations

import math
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import numpy as np
import pandas as pd


def to_jsonable(value: Any) -> Any:
    """
    Best-effort conversion to strict JSON primitives.

    Result tables cross a process boundary and are persisted by the caller,
    so NaN and infinities become ``None`` and numpy scalars become Python
    scalars.
    """

    if value is None:
        return None

    if isinstance(value, bool):
        return value

    if isinstance(value, float):
        return value if math.isfinite(value) else None

    if isinstance(value, (str, int)):
        return value

    if isinstance(value, Enum):
        return to_jsonable(value.value)

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, (datetime, date, time)):
        return value.isoformat()

    if isinstance(value, Decimal):
        return to_jsonable(float(value))

    if isinstance(value, pd.Timestamp):
        return value.isoformat()

    if isinstance(value, np.generic):
        return to_jsonable(value.item())

    if isinstance(value, np.ndarray):
        return [to_jsonable(v) for v in value.tolist()]

    if hasattr(value, "to_dict") and callable(value.to_dict):
        return to_jsonable(value.to_dict())

    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))

    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]

    # Fallback: preserve the value as a string rather than failing the reply.
    return str(value)
