from __future__ import annotations
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Response
import structlog

from runpool.auth_deps import CurrentUser, get_current_user
from runpool.deps import get_repositories, require_admin, require_member
from runpool.errors import NotFound
from runpool.repositories.base import Repositories
from runpool.repositories.records import ChallengeRecord, GroupRecord
from runpool.schemas.challenge import ChallengeCreate, ChallengePublic
from runpool.schemas.group import GroupCreate, GroupPublic, MemberPublic, RoleUpdate
from runpool.services.invite_code import generate_code, normalize_code
from runpool.services.ranking import display_name

router = APIRouter(prefix="/groups", tags=["groups"])
log = structlog.get_logger()

def to_group_public(g: GroupRecord, role: str | None) -> GroupPublic:
    return GroupPublic(id=g.id, name=g.name, owner_id=g.owner_id, invite_code=g.invite_code, your_role=role)

def to_challenge_public(c: ChallengeRecord) -> ChallengePublic:
    return ChallengePublic(
        id=c.id, group_id=c.group_id, week_start=c.week_start, week_end=c.week_end,
        status=c.status, pot=float(c.pot),
    )

async def _load_group(repos: Repositories, group_id: UUID) -> GroupRecord:
    g = await repos.groups.get_group(group_id)
    if not g:
        raise NotFound("Group", group_id)
    return g

@router.post("", response_model=GroupPublic, status_code=201)
async def create_group(payload: GroupCreate, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    # Unique invite code; collisions are rare, retry a few times
    for _ in range(5):
        code = generate_code()
        if not await repos.groups.get_group_by_code(code):
            break
    else:
        raise HTTPException(status_code=503, detail="Could not allocate an invite code, try again")

    g = await repos.groups.add_group(name=payload.name, owner_id=user.id, invite_code=code)
    await repos.groups.add_membership(g.id, user.id, "owner")
    await repos.commit()
    log.info("group.created", group_id=str(g.id), owner_id=str(user.id))
    return to_group_public(g, "owner")

@router.get("/{group_id}", response_model=GroupPublic)
async def get_group(group_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    g = await _load_group(repos, group_id)
    m = await require_member(repos, g.id, user)
    return to_group_public(g, m.role)

@router.post("/join/{invite_code}", response_model=GroupPublic, status_code=201)
async def join_by_code(
    invite_code: str,
    response: Response,
    repos: Repositories = Depends(get_repositories),
    user: CurrentUser = Depends(get_current_user),
):
    g = await repos.groups.get_group_by_code(normalize_code(invite_code))
    if not g:
        raise NotFound("Group", invite_code)
    existing = await repos.groups.get_membership(g.id, user.id)
    if existing:
        response.status_code = 200
        return to_group_public(g, existing.role)
    m = await repos.groups.add_membership(g.id, user.id, "member")
    await repos.commit()
    log.info("group.joined", group_id=str(g.id), user_id=str(user.id))
    return to_group_public(g, m.role)

@router.get("/{group_id}/members", response_model=list[MemberPublic])
async def list_members(group_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    g = await _load_group(repos, group_id)
    await require_member(repos, g.id, user)
    members = await repos.groups.list_memberships(g.id)
    profiles = await repos.groups.profiles_for([m.user_id for m in members])
    return [
        MemberPublic(
            user_id=m.user_id,
            name=display_name(m.user_id, profiles[m.user_id].name if m.user_id in profiles else None),
            role=m.role,
        )
        for m in members
    ]

@router.patch("/{group_id}/members/{member_id}", response_model=MemberPublic)
async def set_member_role(
    group_id: UUID,
    member_id: UUID,
    payload: RoleUpdate,
    repos: Repositories = Depends(get_repositories),
    user: CurrentUser = Depends(get_current_user),
):
    g = await _load_group(repos, group_id)
    me = await require_member(repos, g.id, user)
    if me.role != "owner":
        raise HTTPException(status_code=403, detail="Only the group owner can change roles")
    target = await repos.groups.get_membership(g.id, member_id)
    if not target:
        raise NotFound("Member", member_id)
    if target.role == "owner":
        raise HTTPException(status_code=400, detail="The owner's role cannot be changed")
    m = await repos.groups.set_role(g.id, member_id, payload.role)
    await repos.commit()
    profiles = await repos.groups.profiles_for([member_id])
    return MemberPublic(
        user_id=m.user_id,
        name=display_name(m.user_id, profiles[m.user_id].name if m.user_id in profiles else None),
        role=m.role,
    )

@router.post("/{group_id}/challenges", response_model=ChallengePublic, status_code=201)
async def create_challenge(
    group_id: UUID,
    payload: ChallengeCreate,
    repos: Repositories = Depends(get_repositories),
    user: CurrentUser = Depends(get_current_user),
):
    g = await _load_group(repos, group_id)
    await require_admin(repos, g.id, user)
    if await repos.challenges.find_open_challenge(g.id):
        raise HTTPException(status_code=409, detail="This group already has an open challenge")
    c = await repos.challenges.add_challenge(
        group_id=g.id, week_start=payload.week_start, week_end=payload.week_end, pot=payload.pot
    )
    await repos.commit()
    log.info("challenge.created", challenge_id=str(c.id), group_id=str(g.id))
    return to_challenge_public(c)

@router.get("/{group_id}/challenges", response_model=list[ChallengePublic])
async def list_challenges(group_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    g = await _load_group(repos, group_id)
    await require_member(repos, g.id, user)
    return [to_challenge_public(c) for c in await repos.challenges.list_group_challenges(g.id)]
