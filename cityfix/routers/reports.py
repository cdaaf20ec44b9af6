# File: cityfix/routers/reports.py
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from cityfix.core.config import settings
from cityfix.core.ratelimit import limiter
from cityfix.core.security import get_current_user, get_optional_user, is_admin, require_role
from cityfix.models.user import Profile
from cityfix.schemas.report import (
    CommentAuthor, CommentDraft, CommentIn, Report, ReportComment, ReportDraft,
    ReportPage, ReportSubmission, ReportUpdate, UserRef,
)
from cityfix.services.dashboard import filter_reports, paginate, sort_reports
from cityfix.services.report_store import ReportStore
from cityfix.services.storage import delete_image, upload_image

router = APIRouter(prefix="/reports", tags=["reports"])

ADMIN_ONLY_FIELDS = {"status", "assigned_to"}


def get_store(request: Request) -> ReportStore:
    return request.app.state.report_store


def _local_report(store: ReportStore, report_id: str) -> Optional[Report]:
    return next((r for r in store.list_reports() if r.id == report_id), None)


def _check_owner_or_admin(report: Optional[Report], user: Profile) -> None:
    # unknown ids fall through so the remote store reports not-found
    if report is None or is_admin(user):
        return
    if report.reported_by.id != user.id:
        raise HTTPException(status_code=403, detail="Only the reporter or an admin can change this report")


@router.get("", response_model=ReportPage)
async def list_reports(
    search: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    sort: str = Query(default="createdAt"),
    direction: str = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=100),
    mine: bool = Query(default=False),
    user: Optional[Profile] = Depends(get_optional_user),
    store: ReportStore = Depends(get_store),
):
    items = store.list_reports()
    if mine:
        if user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        items = [r for r in items if r.reported_by.id == user.id]
    items = filter_reports(items, search=search, status=status, category=category)
    try:
        items = sort_reports(items, sort, direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = paginate(items, page, per_page)
    return ReportPage(
        items=result.items,
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        total_pages=result.total_pages,
    )


@router.post("", response_model=Report, status_code=201)
@limiter.limit(settings.reports_rate_limit)
async def create_report(
    request: Request,
    body: ReportSubmission,
    user: Profile = Depends(get_current_user),
    store: ReportStore = Depends(get_store),
):
    draft = ReportDraft(
        title=body.title.strip(),
        description=body.description,
        category=body.category,
        location=body.location,
        images=body.images,
        severity=body.severity,
        reported_by=UserRef(id=user.id, name=user.name),
    )
    return await store.add_report(draft)


# registered before the /{report_id} routes so "images" is not taken for an id
@router.post("/images", status_code=201)
async def upload_report_image(
    file: UploadFile = File(...),
    folder: str = Form("issues"),
    user: Profile = Depends(get_current_user),
):
    data = await file.read()
    url = await run_in_threadpool(
        upload_image, data, file.content_type or "", file.filename or "upload.jpg", folder
    )
    return {"url": url}


@router.delete("/images")
async def delete_report_image(url: str = Query(...), user: Profile = Depends(get_current_user)):
    await run_in_threadpool(delete_image, url)
    return {"ok": True}


@router.post("/votes/retry", dependencies=[Depends(require_role("admin"))])
async def retry_votes(store: ReportStore = Depends(get_store)):
    confirmed = await store.retry_failed_votes()
    return {"confirmed": confirmed, "pending": len(store.failed_votes())}


@router.get("/{report_id}", response_model=Report)
async def get_report(report_id: str, store: ReportStore = Depends(get_store)):
    report = await store.get_report_by_id(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.patch("/{report_id}", response_model=Report)
async def update_report(
    report_id: str,
    body: ReportUpdate,
    user: Profile = Depends(get_current_user),
    store: ReportStore = Depends(get_store),
):
    _check_owner_or_admin(_local_report(store, report_id), user)
    if not is_admin(user) and body.model_fields_set & ADMIN_ONLY_FIELDS:
        raise HTTPException(status_code=403, detail="Only admins can change status or assignment")

    report = await store.update_report(report_id, body)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.delete("/{report_id}", status_code=204)
async def delete_report(
    report_id: str,
    user: Profile = Depends(get_current_user),
    store: ReportStore = Depends(get_store),
):
    _check_owner_or_admin(_local_report(store, report_id), user)
    await store.delete_report(report_id)
    return Response(status_code=204)


@router.post("/{report_id}/upvote", response_model=Report)
async def upvote_report(
    report_id: str,
    user: Profile = Depends(get_current_user),
    store: ReportStore = Depends(get_store),
):
    report = await store.upvote_report(report_id, user.id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.post("/{report_id}/comments", response_model=ReportComment, status_code=201)
async def add_comment(
    report_id: str,
    body: CommentIn,
    user: Profile = Depends(get_current_user),
    store: ReportStore = Depends(get_store),
):
    text = body.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Empty comment")
    draft = CommentDraft(
        text=text,
        user=CommentAuthor(id=user.id, name=user.name, role=user.role.value),
    )
    return await store.add_comment(report_id, draft)
