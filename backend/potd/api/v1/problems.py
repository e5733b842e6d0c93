"""Read-only catalogue: active problem lists and problems."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from potd.db.session import get_db
from potd.models.problem import Problem
from potd.models.problem_list import ProblemList
from potd.schemas.subscription import ProblemListOut, ProblemOut

router = APIRouter(tags=["problems"])


@router.get("/problem-lists", summary="Active problem lists")
async def list_problem_lists(session: Annotated[AsyncSession, Depends(get_db)]) -> dict:
    r = await session.execute(
        select(ProblemList).where(ProblemList.is_active.is_(True)).order_by(ProblemList.name)
    )
    return {"ok": True, "problem_lists": [ProblemListOut.model_validate(p).model_dump() for p in r.scalars().all()]}


@router.get("/problems", summary="Active problems")
async def list_problems(
    session: Annotated[AsyncSession, Depends(get_db)],
    problem_list_id: int | None = Query(None),
) -> dict:
    stmt = select(Problem).where(Problem.active.is_(True))
    if problem_list_id is not None:
        stmt = stmt.where(Problem.problem_list_id == problem_list_id)
    r = await session.execute(stmt.order_by(Problem.id))
    return {"ok": True, "data": [ProblemOut.model_validate(p).model_dump() for p in r.scalars().all()]}
