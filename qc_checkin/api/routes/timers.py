'''
Session countdown and turn clock for the active check-in.
'''
from fastapi import APIRouter, Depends, HTTPException
from qc_checkin.api.deps import get_session_clocks
from qc_checkin.schemas.timer import SessionClocksOut
from qc_checkin.services.session_clocks import SessionClocks

router = APIRouter(prefix="/api/checkins", tags=["timers"])

@router.get("/clocks", response_model=SessionClocksOut)
async def clocks(clocks: SessionClocks = Depends(get_session_clocks)):
    return clocks.snapshot()

@router.post("/timer/start", response_model=SessionClocksOut)
async def start_timer(clocks: SessionClocks = Depends(get_session_clocks)):
    clocks.timer.start()
    return clocks.snapshot()

@router.post("/timer/pause", response_model=SessionClocksOut)
async def pause_timer(clocks: SessionClocks = Depends(get_session_clocks)):
    clocks.timer.pause()
    return clocks.snapshot()

@router.post("/timer/resume", response_model=SessionClocksOut)
async def resume_timer(clocks: SessionClocks = Depends(get_session_clocks)):
    clocks.timer.resume()
    return clocks.snapshot()

@router.post("/timer/reset", response_model=SessionClocksOut)
async def reset_timer(clocks: SessionClocks = Depends(get_session_clocks)):
    clocks.timer.reset()
    return clocks.snapshot()

@router.post("/turn/start", response_model=SessionClocksOut)
async def start_turn(clocks: SessionClocks = Depends(get_session_clocks)):
    if not clocks.turns.is_active:
        raise HTTPException(status_code=409, detail="Turn-based mode is off")
    clocks.turns.start()
    return clocks.snapshot()

@router.post("/turn/pause", response_model=SessionClocksOut)
async def pause_turn(clocks: SessionClocks = Depends(get_session_clocks)):
    clocks.turns.pause()
    return clocks.snapshot()

@router.post("/turn/resume", response_model=SessionClocksOut)
async def resume_turn(clocks: SessionClocks = Depends(get_session_clocks)):
    clocks.turns.resume()
    return clocks.snapshot()

@router.post("/turn/switch", response_model=SessionClocksOut)
async def switch_turn(clocks: SessionClocks = Depends(get_session_clocks)):
    if not clocks.turns.is_active:
        raise HTTPException(status_code=409, detail="Turn-based mode is off")
    clocks.turns.switch_turn()
    return clocks.snapshot()

@router.post("/turn/extend", response_model=SessionClocksOut)
async def extend_turn(clocks: SessionClocks = Depends(get_session_clocks)):
    if not clocks.turns.extend_turn():
        raise HTTPException(status_code=409, detail="No turn extensions left")
    return clocks.snapshot()
