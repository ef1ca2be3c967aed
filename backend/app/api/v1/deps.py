r"""backend\app\api\v1\deps.py

Request plumbing shared by the versioned routers: tenant resolution and the
translation of service failures into HTTP errors.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Header, HTTPException, status

from ...core.config import get_settings
from ...core.errors import DataAccessError

LOGGER = logging.getLogger(__name__)


def error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


def tenant_id(x_tenant_id: Optional[str] = Header(None)) -> str:
    """Resolve the tenant from ``X-Tenant-ID`` or fall back to the configured default."""

    tenant = (x_tenant_id or "").strip()
    return tenant or get_settings().default_tenant_id


@contextmanager
def service_errors(action: str) -> Iterator[None]:
    """Map engine failures raised inside the block onto HTTP responses."""

    try:
        yield
    except DataAccessError as exc:
        LOGGER.exception("Historical data unavailable while %s", action)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_payload(
                "data_unavailable",
                f"Historical data could not be read ({exc.operation}). Check the data directory and retry.",
            ),
        ) from exc
    except ValueError as exc:
        LOGGER.warning("Rejected request while %s: %s", action, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_payload("invalid_request", str(exc)),
        ) from exc
