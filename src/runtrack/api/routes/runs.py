"""Finished-run query routes."""
from typing import Generator, List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select

from runtrack.models.run import RunRecord, RunSplit

router = APIRouter()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a DB session on the engine the app was built with."""
    with Session(request.app.state.engine) as session:
        yield session


@router.get("/", response_model=List[RunRecord])
def list_runs(
    limit: int = 20,
    offset: int = 0,
    session: Session = Depends(get_db),
):
    """List finished runs, newest first."""
    return session.exec(
        select(RunRecord)
        .order_by(RunRecord.started_at.desc())
        .offset(offset)
        .limit(limit)
    ).all()


@router.get("/{session_id}", response_model=RunRecord)
def get_run(session_id: str, session: Session = Depends(get_db)):
    """Fetch a finished run by its session id."""
    run = session.exec(
        select(RunRecord).where(RunRecord.session_id == session_id)
    ).first()
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.get("/{session_id}/splits", response_model=List[RunSplit])
def get_run_splits(session_id: str, session: Session = Depends(get_db)):
    """Kilometer splits of a finished run, in order."""
    run = session.exec(
        select(RunRecord).where(RunRecord.session_id == session_id)
    ).first()
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return session.exec(
        select(RunSplit).where(RunSplit.run_id == run.id).order_by(RunSplit.km_number)
    ).all()
