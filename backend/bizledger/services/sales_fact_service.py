# Overview: Read-only, tenant-scoped access to point-of-sale transactions.

from __future__ import annotations

from datetime import date

from ..models import SaleFact
from ..time_utils import window_bounds
from .concurrency import read_with_retry
from .tenant_service import get_owned, scoped_query


def list_sales(principal, start: date | None = None, end: date | None = None) -> list[SaleFact]:
    start_dt, end_dt = window_bounds(start, end)

    def _op():
        query = scoped_query(SaleFact, principal)
        if start_dt:
            query = query.filter(SaleFact.occurred_at >= start_dt)
        if end_dt:
            query = query.filter(SaleFact.occurred_at <= end_dt)
        return query.order_by(SaleFact.occurred_at.desc(), SaleFact.id.desc()).all()

    return read_with_retry(_op)


def get_sale(principal, sale_id: int) -> SaleFact:
    return get_owned(SaleFact, principal, sale_id, "Sale")
