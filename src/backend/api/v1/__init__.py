"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.ballots import router as ballots_router
from api.v1.elections import router as elections_router
from api.v1.voters import router as voters_router
from api.v1.votes import router as votes_router

router = APIRouter()

router.include_router(elections_router, prefix="/elections", tags=["Elections"])
router.include_router(voters_router, prefix="/elections/{election_id}/voters", tags=["Voters"])
router.include_router(ballots_router, prefix="/elections/{election_id}/ballot", tags=["Ballots"])
router.include_router(votes_router, prefix="/votes", tags=["Votes"])
