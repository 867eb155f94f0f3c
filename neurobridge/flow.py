import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from neurobridge.catalog import QuizSource
from neurobridge.schemas import Domain, EvaluationResult, QuizData, QuizQuestion
from neurobridge.services import evaluate_quiz

logger = logging.getLogger(__name__)

GENERATION_FAILED_NOTICE = "Failed to generate quiz. Please try again"


class FlowStep(str, Enum):
    CATEGORY_SELECTION = "category-selection"
    DOMAIN_SELECTION = "domain-selection"
    QUIZ = "quiz"
    RESULTS = "results"


class FlowError(Exception):
    pass


class InvalidTransitionError(FlowError):
    pass


class UnknownSelectionError(FlowError):
    pass


@dataclass
class QuizFlow:
    """Category -> domain -> questions -> results, for one candidate.

    ``generating`` is set while the quiz for the chosen domain is loading;
    answers are refused until it clears.
    """

    source: QuizSource
    step: FlowStep = FlowStep.CATEGORY_SELECTION
    category_id: Optional[str] = None
    domain: Optional[Domain] = None
    quiz: Optional[QuizData] = None
    generating: bool = False
    current_question: int = 0
    answers: List[int] = field(default_factory=list)
    evaluation: Optional[EvaluationResult] = None
    notice: str = ""

    def _require(self, step: FlowStep, action: str):
        if self.step != step:
            raise InvalidTransitionError(f"Cannot {action} during {self.step.value}")

    @property
    def domain_id(self) -> Optional[str]:
        return self.domain.id if self.domain else None

    @property
    def question(self) -> Optional[QuizQuestion]:
        if self.step != FlowStep.QUIZ or self.generating or not self.quiz:
            return None
        return self.quiz.questions[self.current_question]

    def select_category(self, category_id: str):
        self._require(FlowStep.CATEGORY_SELECTION, "select a category")
        if not self.source.category(category_id):
            raise UnknownSelectionError(f"Unknown category: {category_id}")
        self.category_id = category_id
        self.notice = ""
        self.step = FlowStep.DOMAIN_SELECTION

    def back(self):
        self._require(FlowStep.DOMAIN_SELECTION, "go back")
        self.category_id = None
        self.notice = ""
        self.step = FlowStep.CATEGORY_SELECTION

    def select_domain(self, domain_id: str) -> Domain:
        self._require(FlowStep.DOMAIN_SELECTION, "select a domain")
        domain = self.source.domain(self.category_id, domain_id)
        if not domain:
            raise UnknownSelectionError(f"Unknown domain: {domain_id}")
        self.domain = domain
        self.quiz = None
        self.generating = True
        self.notice = ""
        self.step = FlowStep.QUIZ
        return domain

    def finish_loading(self, quiz: Optional[QuizData], error: str = ""):
        self._require(FlowStep.QUIZ, "finish loading")
        if not self.generating:
            raise InvalidTransitionError("Quiz is not loading")
        self.generating = False
        if quiz:
            self.quiz = quiz
            self.current_question = 0
            self.answers = []
            return

        logger.warning("No quiz produced for domain=%s; returning to domain selection", self.domain_id)
        self.domain = None
        self.notice = error or GENERATION_FAILED_NOTICE
        self.step = FlowStep.DOMAIN_SELECTION

    def answer(self, option_index: int) -> bool:
        """Record an answer; returns True when it completed the quiz."""
        self._require(FlowStep.QUIZ, "answer")
        if self.generating or not self.quiz:
            raise InvalidTransitionError("Quiz is still loading")
        if not 0 <= option_index <= 3:
            raise UnknownSelectionError(f"Unknown option: {option_index}")

        self.answers.append(option_index)
        if self.current_question == len(self.quiz.questions) - 1:
            self.evaluation = evaluate_quiz(self.quiz.questions, self.answers)
            self.step = FlowStep.RESULTS
            return True
        self.current_question += 1
        return False

    def retake(self):
        self.step = FlowStep.CATEGORY_SELECTION
        self.category_id = None
        self.domain = None
        self.quiz = None
        self.generating = False
        self.current_question = 0
        self.answers = []
        self.evaluation = None
        self.notice = ""
