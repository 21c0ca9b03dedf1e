"""Request bodies and JSON payload builders for the Kid Rewards API."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import BalanceReport, IssuedCredential, KidSession, RedemptionReceipt
from ..persistence import KidProfile, KidTask, Redemption, Reward


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ParentLoginRequest(_CamelModel):
    username: str = ""
    password: str = ""


class KidSessionRequest(_CamelModel):
    kid_id: str = Field(..., alias="kidId")


class CreateKidRequest(_CamelModel):
    display_name: Optional[str] = Field(None, alias="displayName")


class UpdateKidRequest(_CamelModel):
    display_name: Optional[str] = Field(None, alias="displayName")


class CreateTaskRequest(_CamelModel):
    title: Optional[str] = None
    points: int = Field(0, ge=0)
    assigned_kid_id: str = Field(..., alias="assignedKidId")


class CreateRewardRequest(_CamelModel):
    name: Optional[str] = None
    cost: int = Field(0, ge=0)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------
def credential_payload(credential: IssuedCredential) -> Dict[str, Any]:
    return {"token": credential.token, "role": credential.role.value}


def kid_session_payload(kid_session: KidSession) -> Dict[str, Any]:
    return {
        **credential_payload(kid_session.credential),
        "kidId": kid_session.kid.id,
        "displayName": kid_session.kid.display_name,
    }


def kid_payload(kid: KidProfile) -> Dict[str, Any]:
    return {"id": kid.id, "parentId": kid.parent_id, "displayName": kid.display_name}


def task_payload(task: KidTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "points": task.points,
        "assignedKidId": task.assigned_kid_id,
        "createdByParentId": task.created_by_parent_id,
        "isComplete": task.is_complete,
        "completedAt": task.completed_at.isoformat() if task.completed_at else None,
    }


def reward_payload(reward: Reward) -> Dict[str, Any]:
    return {"id": reward.id, "name": reward.name, "cost": reward.cost}


def redemption_payload(redemption: Redemption) -> Dict[str, Any]:
    return {
        "id": redemption.id,
        "kidId": redemption.kid_id,
        "rewardId": redemption.reward_id,
        "redeemedAt": redemption.redeemed_at.isoformat(),
    }


def balance_payload(report: BalanceReport) -> Dict[str, Any]:
    return {"kidId": report.kid_id, "points": report.points}


def receipt_payload(receipt: RedemptionReceipt) -> Dict[str, Any]:
    return {
        "kidId": receipt.kid_id,
        "newPoints": receipt.new_points,
        "redemption": redemption_payload(receipt.redemption),
    }


__all__ = [
    "CreateKidRequest",
    "CreateRewardRequest",
    "CreateTaskRequest",
    "KidSessionRequest",
    "ParentLoginRequest",
    "UpdateKidRequest",
    "balance_payload",
    "credential_payload",
    "kid_payload",
    "kid_session_payload",
    "receipt_payload",
    "redemption_payload",
    "reward_payload",
    "task_payload",
]
