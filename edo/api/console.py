from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from edo.workflow.controller import Command, CommandResult, EdoConsole
from edo.workflow.render import ConsoleView

router = APIRouter(prefix="/api/console", tags=["Console"])

# Response Models
class ActionResponse(BaseModel):
    result: CommandResult
    view: ConsoleView

class ViewResponse(BaseModel):
    view: ConsoleView
    xml: Optional[str] = None

def get_console(request: Request) -> EdoConsole:
    console = getattr(request.app.state, "console", None)
    if console is None:
        raise HTTPException(status_code=503, detail="Console is not ready")
    return console

@router.get("/view", response_model=ViewResponse)
async def get_view(console: EdoConsole = Depends(get_console)):
    return ViewResponse(view=console.render())

@router.post("/actions", response_model=ActionResponse)
async def run_action(command: Command, console: EdoConsole = Depends(get_console)):
    """
    Execute one console intent. Backend failures never surface as HTTP errors:
    they come back as notices in the result with `ok` set to false.
    """
    result = await console.dispatch(command)
    return ActionResponse(result=result, view=console.render())
