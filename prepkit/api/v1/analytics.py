from fastapi import APIRouter, Depends, Header, Query

from prepkit.core.security import check_api_key
from prepkit.analytics import db as analytics_db

router = APIRouter()


def _auth(x_api_key: str | None = Header(default=None, alias="X-API-Key")):
    check_api_key(x_api_key)


@router.get("/analytics/summary")
def summary(_: None = Depends(_auth)):
    return analytics_db.get_summary()


@router.get("/analytics/runs")
def latest_runs(
    limit: int = Query(default=20, ge=1, le=200),
    task: str | None = Query(default=None, max_length=64),
    _: None = Depends(_auth),
):
    return analytics_db.get_latest_runs(limit=limit, task=task)
