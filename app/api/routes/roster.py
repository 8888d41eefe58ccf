from typing import List

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_tracker
from app.schemas.profile import ProfileRecord, RosterEntry
from app.services.tracker import Tracker

router = APIRouter()


@router.get("", response_model=List[RosterEntry])
async def roster(tracker: Tracker = Depends(get_tracker)):
    return await tracker.hub.snapshot()


@router.get("/{identity_key}", response_model=ProfileRecord)
async def roster_entry(identity_key: str, tracker: Tracker = Depends(get_tracker)):
    record = await tracker.registry.get(identity_key)
    if record is None:
        raise HTTPException(status_code=404, detail="Unknown identity")
    return record
