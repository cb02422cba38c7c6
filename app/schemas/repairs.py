"""
schemas/repairs.py — Pydantic models for the repair intake form, actions and timers

Business Rules:
- Priority is standard | rush; source customer | internal
- Issue severity is cosmetic | functional | critical
- The intake form posts camelCase; both spellings are accepted

Called by: routers/repairs.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _CamelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RepairIssueIn(_CamelBody):
    category: str
    specific_issue: str = Field(alias="specificIssue")
    severity: str = Field(pattern=r"^(cosmetic|functional|critical)$")


class RepairCreate(_CamelBody):
    repair_source: str | None = Field(default=None, alias="repairSource")
    order_type: str | None = Field(default=None, alias="orderType")
    original_order_number: str | None = Field(default=None, alias="originalOrderNumber")
    customer_name: str | None = Field(default=None, alias="customerName")
    customer_email: str | None = Field(default=None, alias="customerEmail")
    customer_phone: str | None = Field(default=None, alias="customerPhone")
    model: str | None = None
    serial_number: str | None = Field(default=None, alias="serialNumber")
    wood_type: str | None = Field(default=None, alias="woodType")
    priority: str = Field(default="standard", pattern=r"^(standard|rush)$")
    repair_type: str | None = Field(default=None, alias="repairType")
    location: str | None = None
    customer_note: str | None = Field(default=None, alias="customerNote")
    internal_notes: str | None = Field(default=None, alias="internalNotes")
    issues: list[RepairIssueIn] = Field(default_factory=list)


class RepairUpdate(_CamelBody):
    status: str | None = None
    location: str | None = None
    estimated_cost: float | None = Field(default=None, alias="estimatedCost")
    final_cost: float | None = Field(default=None, alias="finalCost")
    customer_approved: bool | None = Field(default=None, alias="customerApproved")
    assigned_to_id: int | None = Field(default=None, alias="assignedToId")
    priority: str | None = Field(default=None, pattern=r"^(standard|rush)$")
    internal_notes: str | None = Field(default=None, alias="internalNotes")
    customer_note: str | None = Field(default=None, alias="customerNote")


class PartUsedIn(_CamelBody):
    part_name: str = Field(alias="partName")
    part_number: str | None = Field(default=None, alias="partNumber")
    quantity: int = 1
    unit_cost: float | None = Field(default=None, alias="unitCost")


class RepairActionCreate(_CamelBody):
    action_type: str | None = Field(default=None, alias="actionType")
    action_description: str | None = Field(default=None, alias="actionDescription")
    time_spent_minutes: int | None = Field(default=None, alias="timeSpentMinutes")
    parts_used: list[PartUsedIn] = Field(default_factory=list, alias="partsUsed")


class RepairIssueCreate(_CamelBody):
    category: str | None = None
    specific_issue: str | None = Field(default=None, alias="specificIssue")
    severity: str | None = None


class RepairTimerStart(_CamelBody):
    work_description: str | None = Field(default=None, alias="workDescription")


class RepairTimerStop(_CamelBody):
    return_location: str | None = Field(default=None, alias="returnLocation")
