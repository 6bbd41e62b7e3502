from fastapi import APIRouter, Depends, Query

from reattachd.auth import get_current_device
from reattachd.schemas.session import InputRequest, OutputRead
from reattachd.services import tmux

router = APIRouter(dependencies=[Depends(get_current_device)])


@router.delete("/{target}", status_code=204)
async def delete_pane(target: str):
    await tmux.kill_pane(target)


@router.post("/{target}/input")
async def send_input(target: str, body: InputRequest):
    await tmux.send_keys(target, body.text)


@router.post("/{target}/escape")
async def send_escape(target: str):
    await tmux.send_escape(target)


@router.get("/{target}/output", response_model=OutputRead)
async def get_output(target: str, lines: int = Query(200, ge=1)):
    return OutputRead(output=await tmux.capture_pane(target, lines))
