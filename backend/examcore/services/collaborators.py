"""
Read-only adapters for the external collaborators the engine consults.

- QuestionBank: question payloads including correctness data.
- StudentDirectory: a student's department/college membership, used for
  ranking scopes.
"""

import logging
from typing import Dict, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError

from ..models import Question

logger = logging.getLogger(__name__)


class StudentMembership(BaseModel):
    student_id: str
    department_id: Optional[str] = None
    college_id: Optional[str] = None


class QuestionBank:
    """Fetches questions from the bank's ``questions`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.questions_col = db["questions"]

    async def get_questions(self, question_ids: Iterable[str]) -> Dict[str, Question]:
        """
        Fetch questions by id.

        Ids the bank does not know, and records that fail validation, are left
        out of the mapping so the evaluator can grade those answers as zero.
        """
        ids = list(dict.fromkeys(question_ids))
        if not ids:
            return {}
        docs = await self.questions_col.find({"question_id": {"$in": ids}}, {"_id": 0}).to_list(len(ids))
        questions = {}
        for doc in docs:
            try:
                question = Question(**doc)
            except ValidationError as e:
                logger.warning(f"Skipping malformed question {doc.get('question_id')}: {e}")
                continue
            questions[question.question_id] = question
        return questions


class StudentDirectory:
    """Looks up scope membership in the identity service's ``users`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.users_col = db["users"]

    async def get_membership(self, student_id: str) -> StudentMembership:
        doc = await self.users_col.find_one(
            {"user_id": student_id},
            {"_id": 0, "department_id": 1, "college_id": 1},
        )
        if not doc:
            return StudentMembership(student_id=student_id)
        return StudentMembership(
            student_id=student_id,
            department_id=doc.get("department_id"),
            college_id=doc.get("college_id"),
        )
