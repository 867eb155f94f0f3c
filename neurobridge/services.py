import json
import logging
import re
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from neurobridge.config import Config
from neurobridge.gateway import GatewayError, LLMGateway, QuizGenerationError
from neurobridge.schemas import EvaluationResult, QuizData, QuizQuestion

logger = logging.getLogger(__name__)

QUIZ_SYSTEM_PROMPT = (
    "You are an expert quiz generator specializing in technical and soft skills assessments. "
    "Create high-quality, accurate, professional questions. "
    "Return ONLY valid JSON - no markdown, no code blocks, no extra text."
)
FEEDBACK_SYSTEM_PROMPT = (
    "You are a supportive educational coach. "
    "Provide brief, encouraging, neurodiversity-affirming feedback."
)

_JSON_FENCE_RE = re.compile(r"```json\s*")
_FENCE_RE = re.compile(r"```\s*")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class QuizFormatError(QuizGenerationError):
    pass


class InvalidEvaluationDataError(ValueError):
    pass


def percentage_of(score: int, total: int) -> int:
    """Whole-number percentage, rounding halves up."""
    if total <= 0:
        return 0
    return (200 * score + total) // (2 * total)


def build_quiz_messages(topic: str, difficulty: str = "medium", question_count: int = 10) -> List[Dict[str, str]]:
    topic = topic.strip()
    title = f"{topic[:1].upper()}{topic[1:]} Quiz - {difficulty.capitalize()} Level"
    user_prompt = (
        f'Create a {difficulty}-level quiz about "{topic}" with exactly {question_count} multiple-choice questions.\n'
        "\n"
        "REQUIREMENTS:\n"
        "- Each question: exactly 4 options\n"
        "- correctAnswer: index 0-3 of correct option\n"
        "- Clear, professional questions\n"
        "- Practical, job-relevant content\n"
        "- Include detailed explanations\n"
        "\n"
        "RETURN ONLY THIS JSON STRUCTURE:\n"
        "{\n"
        f'  "title": "{title}",\n'
        '  "questions": [\n'
        "    {\n"
        '      "question": "Your question here?",\n'
        '      "options": ["Option A", "Option B", "Option C", "Option D"],\n'
        '      "correctAnswer": 0,\n'
        '      "explanation": "Why this answer is correct and others are wrong."\n'
        "    }\n"
        "  ]\n"
        "}\n"
        "\n"
        f"Generate all {question_count} questions. Return ONLY the JSON."
    )
    return [
        {"role": "system", "content": QUIZ_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_feedback_messages(score: int, total: int, topic: str) -> List[Dict[str, str]]:
    percentage = percentage_of(score, total)
    user_prompt = (
        f"Student scored {score}/{total} ({percentage}%) on a {topic} quiz.\n"
        "\n"
        "Write 2-3 encouraging sentences:\n"
        "- Acknowledge their achievement\n"
        "- Highlight strengths\n"
        "- If below 100%, offer one actionable tip\n"
        "- Keep warm and professional\n"
        "\n"
        "Write feedback now (plain text, no JSON):"
    )
    return [
        {"role": "system", "content": FEEDBACK_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def _is_valid_question(raw) -> bool:
    if not isinstance(raw, dict):
        return False
    question = raw.get("question")
    options = raw.get("options")
    answer = raw.get("correctAnswer")
    return (
        isinstance(question, str)
        and bool(question.strip())
        and isinstance(options, list)
        and len(options) == 4
        and all(isinstance(option, str) for option in options)
        and isinstance(answer, int)
        and not isinstance(answer, bool)
        and 0 <= answer <= 3
    )


def parse_quiz_response(text: str, default_title: str = "") -> QuizData:
    """Pull a quiz out of raw model output.

    Model output is not trusted to be clean JSON: code fences are stripped,
    the outermost ``{...}`` span is taken, and every question is checked for
    a non-empty prompt, exactly four options and a ``correctAnswer`` in 0-3.
    """
    cleaned = (text or "").strip()
    cleaned = _JSON_FENCE_RE.sub("", cleaned)
    cleaned = _FENCE_RE.sub("", cleaned)

    match = _OBJECT_RE.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        preview = cleaned[:200].replace("\n", " ")
        raise QuizFormatError(
            f"Model returned invalid JSON ({exc.msg} at line {exc.lineno}, col {exc.colno}). Preview: {preview!r}"
        ) from exc

    questions = payload.get("questions") if isinstance(payload, dict) else None
    if not isinstance(questions, list) or not questions:
        raise QuizFormatError("Invalid quiz structure: no questions found")

    for idx, raw in enumerate(questions):
        if not _is_valid_question(raw):
            raise QuizFormatError(f"Invalid question at index {idx}")

    title = payload.get("title")
    try:
        quiz = QuizData(
            title=title if isinstance(title, str) and title.strip() else default_title,
            questions=[
                QuizQuestion(
                    question=raw["question"],
                    options=raw["options"],
                    correct_answer=raw["correctAnswer"],
                    explanation=raw.get("explanation") if isinstance(raw.get("explanation"), str) else None,
                )
                for raw in questions
            ],
        )
    except ValidationError as exc:
        raise QuizFormatError(f"Invalid quiz structure: {exc.error_count()} validation errors") from exc

    logger.info("Parsed quiz %r with %s questions", quiz.title, len(quiz.questions))
    return quiz


def evaluate_quiz(questions: Sequence[QuizQuestion], user_answers: Sequence[int]) -> EvaluationResult:
    if not questions or user_answers is None or len(questions) != len(user_answers):
        raise InvalidEvaluationDataError("Invalid evaluation data")

    correct_answers = [question.correct_answer == answer for question, answer in zip(questions, user_answers)]
    score = sum(correct_answers)
    return EvaluationResult(
        score=score,
        total_questions=len(questions),
        percentage=percentage_of(score, len(questions)),
        correct_answers=correct_answers,
    )


def fallback_feedback(score: int, total: int, topic: str) -> str:
    percentage = percentage_of(score, total)
    if percentage >= 90:
        return (
            f"Outstanding work on this {topic} quiz! You scored {score}/{total}, "
            "demonstrating excellent mastery. Keep up the great work!"
        )
    if percentage >= 80:
        return (
            f"Great job! You scored {score}/{total} on the {topic} quiz. "
            "Review the explanations to strengthen your knowledge further."
        )
    if percentage >= 70:
        return (
            f"Good effort on the {topic} quiz! You got {score}/{total} correct. "
            "Take time to review the explanations provided."
        )
    if percentage >= 60:
        return (
            f"You completed the {topic} quiz with {score}/{total}. "
            "Review each question carefully to improve your understanding."
        )
    return (
        f"You scored {score}/{total} on the {topic} quiz. This is a learning opportunity - "
        "review all explanations carefully. Keep practicing!"
    )


def mastery_level(percentage: int) -> str:
    if percentage >= 80:
        return "Expert"
    if percentage >= 70:
        return "Proficient"
    if percentage >= 50:
        return "Competent"
    return "Developing"


def earned_badges(domain_name: str, percentage: int) -> List[str]:
    badges = [f"{domain_name} Explorer"]
    if percentage >= 70:
        badges.append("Skill Achiever")
    if percentage >= 80:
        badges.append("Domain Expert")
    return badges


class LLMQuizService:
    def __init__(self, gateway: Optional[LLMGateway] = None):
        self.gateway = gateway or LLMGateway()

    @property
    def configured(self) -> bool:
        return self.gateway.configured

    def request_quiz(
        self,
        topic: str,
        difficulty: str = Config.DEFAULT_DIFFICULTY,
        question_count: int = Config.DEFAULT_QUESTION_COUNT,
    ) -> QuizData:
        logger.info("Generating %s quiz (topic=%r, question_count=%s)", difficulty, topic, question_count)
        text = self.gateway.complete(
            build_quiz_messages(topic, difficulty, question_count),
            temperature=0.7,
            max_tokens=3000,
        )
        default_title = f"{topic.strip()} Quiz - {difficulty.capitalize()} Level"
        quiz = parse_quiz_response(text, default_title=default_title)
        logger.info("Generated %s questions for topic=%r", len(quiz.questions), topic)
        return quiz

    def generate_quiz(
        self,
        topic: str,
        difficulty: str = Config.DEFAULT_DIFFICULTY,
        question_count: int = Config.DEFAULT_QUESTION_COUNT,
    ) -> Optional[QuizData]:
        try:
            return self.request_quiz(topic, difficulty, question_count)
        except QuizGenerationError as exc:
            logger.warning("Quiz generation failed for topic=%r: %s", topic, exc)
            return None

    def generate_feedback(self, score: int, total: int, topic: str) -> str:
        logger.info("Generating feedback (%s/%s on %r)", score, total, topic)
        try:
            feedback = self.gateway.complete(
                build_feedback_messages(score, total, topic),
                temperature=0.8,
                max_tokens=300,
            )
        except GatewayError as exc:
            logger.warning("Feedback generation failed, using fallback text: %s", exc)
            return fallback_feedback(score, total, topic)
        return feedback.strip()
