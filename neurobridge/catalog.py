import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from neurobridge.schemas import Category, CategoryOut, Domain, DomainOut, QuizData, QuizProgressOut, QuizResultOut
from neurobridge.services import percentage_of

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"


@lru_cache(maxsize=None)
def load_categories(filename: str) -> tuple[Category, ...]:
    with open(DATA_DIR / filename, encoding="utf-8") as handle:
        payload = json.load(handle)
    categories = tuple(Category(**row) for row in payload["categories"])
    logger.info(
        "Loaded %s categories (%s domains) from %s",
        len(categories),
        sum(len(c.domains) for c in categories),
        filename,
    )
    return categories


class QuizSource:
    """Where a quiz session gets its categories, domains and questions from."""

    name = ""
    ai_generated = False
    catalog_file = ""

    def categories(self) -> List[Category]:
        return list(load_categories(self.catalog_file))

    def category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self.categories() if c.id == category_id), None)

    def domain(self, category_id: str, domain_id: str) -> Optional[Domain]:
        category = self.category(category_id)
        if not category:
            return None
        return next((d for d in category.domains if d.id == domain_id), None)

    def describe(self) -> List[CategoryOut]:
        return [
            CategoryOut(
                id=category.id,
                name=category.name,
                description=category.description,
                domains=[
                    DomainOut(
                        id=domain.id,
                        name=domain.name,
                        description=domain.description,
                        question_count=len(domain.questions),
                    )
                    for domain in category.domains
                ],
            )
            for category in self.categories()
        ]

    def load(self, domain: Domain) -> Optional[QuizData]:
        raise NotImplementedError


class QuestionBankSource(QuizSource):
    name = "bank"
    catalog_file = "question_bank.json"

    def load(self, domain: Domain) -> Optional[QuizData]:
        if not domain.questions:
            return None
        return QuizData(title=domain.name, questions=domain.questions)


class GeneratedQuizSource(QuizSource):
    name = "generated"
    ai_generated = True
    catalog_file = "skill_catalog.json"

    def __init__(self, service, difficulty: str = "medium", question_count: int = 10):
        self.service = service
        self.difficulty = difficulty
        self.question_count = question_count

    def load(self, domain: Domain) -> Optional[QuizData]:
        return self.service.generate_quiz(domain.name, self.difficulty, self.question_count)


def build_source(name: str, service=None, difficulty: str = "medium", question_count: int = 10) -> QuizSource:
    if name == QuestionBankSource.name:
        return QuestionBankSource()
    if name == GeneratedQuizSource.name:
        return GeneratedQuizSource(service, difficulty=difficulty, question_count=question_count)
    raise ValueError(f"Unknown quiz source: {name}")


def quiz_progress(source: QuizSource, results: List[QuizResultOut]) -> List[QuizProgressOut]:
    """Per-category progress for one candidate.

    ``results`` must be newest first; every saved result of a category counts
    toward its domain total, retakes included.
    """
    progress = []
    for category in source.categories():
        taken = [result for result in results if result.quiz_type == category.id]
        total = len(category.domains)
        progress.append(
            QuizProgressOut(
                category_id=category.id,
                category_name=category.name,
                completed=len(taken),
                total=total,
                percentage=percentage_of(len(taken), total),
                latest_result=taken[0] if taken else None,
            )
        )
    return progress
