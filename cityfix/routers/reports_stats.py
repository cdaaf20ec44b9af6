# cityfix/routers/reports_stats.py
from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from cityfix.core.security import require_role
from cityfix.routers.reports import get_store
from cityfix.services.dashboard import summarize, status_distribution, category_distribution
from cityfix.services.report_store import ReportStore

router = APIRouter(prefix="/reports/stats", tags=["reports:stats"],
                   dependencies=[Depends(require_role("admin"))])

@router.get("/summary")
async def summary(store: ReportStore = Depends(get_store)):
    return summarize(store.list_reports(), datetime.now(timezone.utc))

@router.get("/by-status")
async def by_status(store: ReportStore = Depends(get_store)):
    return [{"status": s, "count": n} for s, n in status_distribution(store.list_reports()).items()]

@router.get("/by-category")
async def by_category(store: ReportStore = Depends(get_store)):
    counts = category_distribution(store.list_reports())
    return [{"category": c, "count": n} for c, n in sorted(counts.items(), key=lambda kv: -kv[1])]
