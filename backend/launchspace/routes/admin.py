from __future__ import annotations
from fastapi import APIRouter, Depends

from launchspace.deps import get_awards, get_lifecycle, get_store, get_submissions, require_admin
from launchspace.enums import LinkType, LinkTypeAction
from launchspace.errors import NotFound, ValidationFailed
from launchspace.schemas.admin import ApproveIn, LinkTypeIn, WinnerBadgeIn
from launchspace.services.awards import AwardEngine, check_dofollow_eligibility
from launchspace.services.lifecycle import CompetitionLifecycle
from launchspace.services.submissions import SubmissionService
from launchspace.store.base import APPS, DocumentStore

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/approve")
async def approve_directory(
    payload: ApproveIn,
    admin: dict = Depends(require_admin),
    svc: SubmissionService = Depends(get_submissions),
):
    project = await svc.approve(payload.directoryId, payload.action, payload.rejectionReason, admin["id"])
    verb = "approved" if project["status"] != "rejected" else "rejected"
    return {
        "success": True,
        "message": f"Directory {verb} successfully",
        "data": {
            "directoryId": project["id"],
            "status": project["status"],
            "link_type": project.get("link_type"),
            "rejectionReason": project.get("rejection_reason"),
        },
    }


@router.post("/link-type")
async def update_link_type(
    payload: LinkTypeIn,
    admin: dict = Depends(require_admin),
    awards: AwardEngine = Depends(get_awards),
):
    if payload.action == "bulk":
        if not payload.directoryIds:
            raise ValidationFailed("directoryIds array is required", code="MISSING_FIELDS", fields=["directoryIds"])
        if payload.linkType not in (LinkType.dofollow.value, LinkType.nofollow.value):
            raise ValidationFailed("Valid linkType is required (dofollow or nofollow)", code="INVALID_LINK_TYPE")
        result = await awards.bulk_update_link_types(payload.directoryIds, LinkType(payload.linkType), admin["id"])
        return {
            "success": True,
            "message": f"Bulk update completed: {result.successful} successful, {result.failed} failed",
            "result": result.to_dict(),
        }

    try:
        action = LinkTypeAction(payload.action)
    except ValueError:
        raise ValidationFailed("Invalid action", code="INVALID_ACTION")
    if not payload.directoryId:
        raise ValidationFailed("directoryId is required", code="MISSING_FIELDS", fields=["directoryId"])

    if action == LinkTypeAction.toggle:
        project = await awards.toggle_link_type(payload.directoryId, admin["id"])
        message = f"Link type changed to {project['link_type']}"
    elif action == LinkTypeAction.upgrade:
        project = await awards.upgrade_to_dofollow(payload.directoryId, admin["id"])
        message = "Upgraded to dofollow"
    else:
        project = await awards.downgrade_to_nofollow(payload.directoryId, admin["id"])
        message = "Downgraded to nofollow"
    return {"success": True, "message": message, "directory": project}


@router.get("/link-type/stats")
async def link_type_stats(
    admin: dict = Depends(require_admin),
    awards: AwardEngine = Depends(get_awards),
):
    return {"success": True, "stats": await awards.link_type_stats()}


@router.get("/link-type/history/{project_id}")
async def link_type_history(
    project_id: str,
    admin: dict = Depends(require_admin),
    awards: AwardEngine = Depends(get_awards),
):
    history = await awards.link_type_history(project_id)
    return {"success": True, "history": [h.to_dict() for h in history]}


@router.get("/link-type/eligibility/{project_id}")
async def dofollow_eligibility(
    project_id: str,
    admin: dict = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    project = await store.find_one(APPS, {"id": project_id})
    if not project:
        raise NotFound("Directory not found", project_id=project_id)
    return {"success": True, "eligibility": check_dofollow_eligibility(project)}


@router.post("/winner-badge")
async def update_winner_badge(
    payload: WinnerBadgeIn,
    admin: dict = Depends(require_admin),
    awards: AwardEngine = Depends(get_awards),
):
    project, message = await awards.set_winner_badge(payload.directoryId, payload.weekly_position, admin["id"])
    return {"success": True, "message": message, "directory": project}


@router.post("/competitions/{code}/complete")
async def complete_competition(
    code: str,
    admin: dict = Depends(require_admin),
    lifecycle: CompetitionLifecycle = Depends(get_lifecycle),
):
    result = await lifecycle.complete_competition(code)
    return {
        "success": True,
        "message": f"Competition {code} completed. Awarded dofollow to {len(result.winners)} winners.",
        "competition": {
            "id": code,
            "winnersCount": len(result.winners),
            "winners": [
                {"position": i, "name": w.get("name"), "slug": w.get("slug"), "upvotes": w.get("upvotes", 0)}
                for i, w in enumerate(result.winners, start=1)
            ],
        },
    }
