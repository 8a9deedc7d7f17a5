"""
Per-job artifacts captured at launch: parameters and scripts.

Both are returned newest first; callers that need "the current" row take
the head of the list.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from monitor_api.models.job import Code, Parameter


class ParameterRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_job_id(self, job_id: str) -> List[Parameter]:
        result = await self.db.execute(
            select(Parameter)
            .where(Parameter.job_id == job_id)
            .order_by(Parameter.timestamp.desc(), Parameter.id.desc())
        )
        return list(result.scalars().all())


class CodeRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_job_id(self, job_id: str) -> List[Code]:
        result = await self.db.execute(
            select(Code)
            .where(Code.job_id == job_id)
            .order_by(Code.timestamp.desc(), Code.id.desc())
        )
        return list(result.scalars().all())
