from __future__ import annotations
from enum import Enum


class SubmissionStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    scheduled = "scheduled"
    live = "live"
    rejected = "rejected"
    archived = "archived"


class Plan(str, Enum):
    standard = "standard"
    premium = "premium"


class Pricing(str, Enum):
    free = "Free"
    freemium = "Freemium"
    paid = "Paid"


class LinkType(str, Enum):
    nofollow = "nofollow"
    dofollow = "dofollow"


class DofollowReason(str, Enum):
    weekly_winner = "weekly_winner"
    manual_upgrade = "manual_upgrade"
    premium_plan = "premium_plan"


class CompetitionStatus(str, Enum):
    upcoming = "upcoming"
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class CompetitionType(str, Enum):
    weekly = "weekly"


class VoteAction(str, Enum):
    upvote = "upvote"
    remove = "remove"


class ReviewAction(str, Enum):
    approve = "approve"
    reject = "reject"


class LinkTypeAction(str, Enum):
    toggle = "toggle"
    upgrade = "upgrade"
    downgrade = "downgrade"


class EventType(str, Enum):
    project_created = "project.created"
    project_approved = "project.approved"
    project_rejected = "project.rejected"
    vote_cast = "vote.cast"
    competition_winner = "competition.winner"


class NotificationType(str, Enum):
    submission_approved = "submissionApproved"
    submission_rejected = "submissionRejected"


SYSTEM_ACTOR = "system"
