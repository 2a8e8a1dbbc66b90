from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID

Role = Literal["owner", "admin", "member"]


class GroupCreate(BaseModel):
    name: str = Field(min_length=3, max_length=120)


class GroupPublic(BaseModel):
    id: UUID
    name: str
    owner_id: UUID
    invite_code: str
    your_role: Role | None = None


class MemberPublic(BaseModel):
    user_id: UUID
    name: str
    role: Role


class RoleUpdate(BaseModel):
    role: Literal["admin", "member"]
