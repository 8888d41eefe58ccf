from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api.deps import get_tracker
from app.services.tracker import Tracker

router = APIRouter(tags=["page"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[2] / "templates"))


@router.get("/", response_class=HTMLResponse)
async def roster_page(request: Request, tracker: Tracker = Depends(get_tracker)):
    entries = await tracker.hub.snapshot()
    return templates.TemplateResponse(
        request,
        "index.html",
        {"roster": [e.model_dump(by_alias=True) for e in entries]},
    )
