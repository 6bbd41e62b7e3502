from fastapi import APIRouter, Depends

from reattachd.auth import get_current_device
from reattachd.schemas.session import SessionCreate
from reattachd.services import tmux

router = APIRouter(dependencies=[Depends(get_current_device)])


@router.get("", response_model=list[tmux.Session])
async def list_sessions():
    return await tmux.list_sessions()


@router.post("", status_code=201)
async def create_session(body: SessionCreate):
    await tmux.create_session(body.name, body.cwd)
