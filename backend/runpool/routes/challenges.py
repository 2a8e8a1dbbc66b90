from __future__ import annotations
import uuid
from decimal import Decimal
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import RedirectResponse, Response
from redis.exceptions import RedisError
from rq import Queue
import structlog

from runpool.auth_deps import CurrentUser, get_current_user
from runpool.config import settings
from runpool.deps import get_queue, get_repositories, require_admin, require_member
from runpool.errors import NotFound
from runpool.jobs.refresh_leaderboard import refresh_leaderboard
from runpool.repositories.base import Repositories
from runpool.repositories.records import ProofRecord
from runpool.routes.groups import to_challenge_public
from runpool.schemas.challenge import Activity, ChallengePublic, ProofPublic
from runpool.schemas.leaderboard import LeaderboardResponse
from runpool.services.leaderboard import enrich_leaderboard, load_challenge
from runpool.services.media import ext_for_mime, validate_image
from runpool.services.ranking import credited_miles
from runpool.services.storage import get_bytes, presign_get, proof_key, put_bytes

router = APIRouter(prefix="/challenges", tags=["challenges"])
log = structlog.get_logger()

def _to_proof_public(p: ProofRecord) -> ProofPublic:
    image = f"/challenges/{p.challenge_id}/proofs/{p.id}/image" if p.image_key else None
    return ProofPublic(
        id=p.id,
        challenge_id=p.challenge_id,
        user_id=p.user_id,
        miles=float(p.miles),
        activity=p.activity,
        image_url=image,
        created_at=p.created_at,
    )

@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_challenge(challenge_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    ch = await load_challenge(repos, challenge_id)
    await require_member(repos, ch.group_id, user)
    return to_challenge_public(ch)

@router.post("/{challenge_id}/close", response_model=ChallengePublic)
async def close_challenge(challenge_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    ch = await load_challenge(repos, challenge_id)
    await require_admin(repos, ch.group_id, user)
    if not ch.is_open:
        return to_challenge_public(ch)
    closed = await repos.challenges.set_status(ch.id, "CLOSED")
    await repos.commit()
    log.info("challenge.closed", challenge_id=str(ch.id), group_id=str(ch.group_id))
    return to_challenge_public(closed)

@router.post("/{challenge_id}/proofs", response_model=ProofPublic, status_code=201)
async def submit_proof(
    challenge_id: UUID,
    miles: Decimal = Form(..., ge=0, le=1000),
    activity: Activity = Form("run"),
    file: UploadFile | None = File(default=None, description="optional photo of the run"),
    repos: Repositories = Depends(get_repositories),
    queue: Queue = Depends(get_queue),
    user: CurrentUser = Depends(get_current_user),
):
    ch = await load_challenge(repos, challenge_id)
    await require_member(repos, ch.group_id, user)
    if not ch.is_open:
        raise HTTPException(status_code=409, detail="Challenge is closed")

    credited = credited_miles(miles, activity)

    image_key = mime = None
    if file is not None:
        data = await file.read()
        try:
            mime = validate_image(data)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        image_key = proof_key(ch.id, user.id, uuid.uuid4().hex, ext_for_mime(mime))
        put_bytes(image_key, data, mime)

    proof = await repos.proofs.add_proof(
        challenge_id=ch.id, user_id=user.id, miles=credited,
        activity=activity, image_key=image_key, mime_type=mime,
    )
    await repos.commit()
    log.info("proof.created", proof_id=str(proof.id), challenge_id=str(ch.id), user_id=str(user.id), miles=str(credited))

    # Stand-in for the change feed: recompute standings out of band
    try:
        queue.enqueue(refresh_leaderboard, str(ch.id))
    except RedisError as e:
        log.warning("leaderboard.refresh_enqueue_failed", challenge_id=str(ch.id), error=str(e))
    return _to_proof_public(proof)

@router.get("/{challenge_id}/proofs", response_model=list[ProofPublic])
async def list_proofs(challenge_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    ch = await load_challenge(repos, challenge_id)
    await require_member(repos, ch.group_id, user)
    return [_to_proof_public(p) for p in await repos.proofs.list_proofs(ch.id)]

@router.get("/{challenge_id}/proofs/{proof_id}/image")
async def get_proof_image(
    challenge_id: UUID,
    proof_id: UUID,
    repos: Repositories = Depends(get_repositories),
    user: CurrentUser = Depends(get_current_user),
):
    ch = await load_challenge(repos, challenge_id)
    await require_member(repos, ch.group_id, user)
    p = await repos.proofs.get_proof(proof_id)
    if not p or p.challenge_id != ch.id or not p.image_key:
        raise NotFound("Proof image", proof_id)
    if settings.s3_presign_downloads:
        return RedirectResponse(presign_get(p.image_key), status_code=307)
    try:
        data, content_type = get_bytes(p.image_key)
    except FileNotFoundError:
        raise NotFound("Proof image", proof_id)
    return Response(content=data, media_type=p.mime_type or content_type)

@router.get("/{challenge_id}/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(challenge_id: UUID, repos: Repositories = Depends(get_repositories), user: CurrentUser = Depends(get_current_user)):
    ch = await load_challenge(repos, challenge_id)
    await require_member(repos, ch.group_id, user)
    standings = await enrich_leaderboard(repos, ch.id)
    await repos.commit()
    return LeaderboardResponse(
        challenge_id=ch.id,
        group_id=ch.group_id,
        challenge_status=ch.status,
        leaderboard=standings.rows,
    )
