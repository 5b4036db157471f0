from __future__ import annotations
from fastapi import APIRouter, Depends, Query, status

from launchspace.deps import get_current_user, get_submissions
from launchspace.schemas.submission import SubmissionIn, SubmissionUpdate
from launchspace.services.submissions import SubmissionService

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit(
    payload: SubmissionIn,
    user: dict = Depends(get_current_user),
    svc: SubmissionService = Depends(get_submissions),
):
    result = await svc.submit(payload, user)
    project = result.project
    if project["is_draft"]:
        message = "Draft saved. Complete payment to reserve your premium slot."
    else:
        message = "Submission received and queued for review."
    return {
        "success": True,
        "message": message,
        "updated_existing": result.updated_existing,
        "data": {
            "id": project["id"],
            "slug": project["slug"],
            "status": project["status"],
            "plan": project["plan"],
            "is_draft": project["is_draft"],
            "launch_week": project["launch_week"],
            "launch_date": project["launch_date"],
        },
    }


@router.get("/check-duplicate")
async def check_duplicate(
    slug: str | None = Query(default=None),
    website_url: str | None = Query(default=None),
    svc: SubmissionService = Depends(get_submissions),
):
    return await svc.check_duplicate(slug=slug, website_url=website_url)


@router.patch("/{project_id}")
async def update_submission(
    project_id: str,
    changes: SubmissionUpdate,
    user: dict = Depends(get_current_user),
    svc: SubmissionService = Depends(get_submissions),
):
    project = await svc.update_details(project_id, user, changes)
    return {"success": True, "data": project}


@router.delete("/{project_id}")
async def delete_draft(
    project_id: str,
    user: dict = Depends(get_current_user),
    svc: SubmissionService = Depends(get_submissions),
):
    await svc.delete_draft(project_id, user)
    return {"success": True, "deleted": project_id}
