import json

import pytest

from neurobridge.gateway import GatewayRateLimitError
from neurobridge.schemas import QuizQuestion
from neurobridge.services import (
    InvalidEvaluationDataError,
    LLMQuizService,
    QuizFormatError,
    build_feedback_messages,
    build_quiz_messages,
    earned_badges,
    evaluate_quiz,
    fallback_feedback,
    mastery_level,
    parse_quiz_response,
    percentage_of,
)


def _question(correct: int, text: str = "Which keyword defines a function?") -> QuizQuestion:
    return QuizQuestion(
        question=text,
        options=["def", "func", "lambda", "fn"],
        correct_answer=correct,
        explanation="def starts a function definition.",
    )


def _quiz_json(**overrides) -> str:
    payload = {
        "title": "Python Quiz - Medium Level",
        "questions": [
            {
                "question": "Which keyword defines a function?",
                "options": ["def", "func", "lambda", "fn"],
                "correctAnswer": 0,
                "explanation": "def starts a function definition.",
            },
            {
                "question": "Which type is immutable?",
                "options": ["list", "dict", "tuple", "set"],
                "correctAnswer": 2,
            },
        ],
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeGateway:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    configured = True

    def complete(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        if self.error:
            raise self.error
        return self.reply


def test_parse_quiz_response_strips_code_fences_and_chatter():
    text = "Sure! Here is your quiz:\n```json\n" + _quiz_json() + "\n```\nGood luck!"

    quiz = parse_quiz_response(text)

    assert quiz.title == "Python Quiz - Medium Level"
    assert len(quiz.questions) == 2
    assert quiz.questions[1].correct_answer == 2
    assert quiz.questions[1].explanation is None


def test_parse_quiz_response_matches_unfenced_parse():
    fenced = parse_quiz_response("```json\n" + _quiz_json() + "\n```")
    plain = parse_quiz_response(_quiz_json())

    assert fenced == plain


def test_parse_quiz_response_uses_default_title_when_missing():
    quiz = parse_quiz_response(_quiz_json(title=""), default_title="Sql Quiz - Easy Level")

    assert quiz.title == "Sql Quiz - Easy Level"


def test_parse_quiz_response_rejects_invalid_json():
    with pytest.raises(QuizFormatError, match="invalid JSON"):
        parse_quiz_response('{"title": "Broken", "questions": [}')


def test_parse_quiz_response_rejects_missing_questions():
    with pytest.raises(QuizFormatError, match="no questions found"):
        parse_quiz_response(json.dumps({"title": "Empty", "questions": []}))


def test_parse_quiz_response_rejects_wrong_option_count():
    payload = json.loads(_quiz_json())
    payload["questions"][1]["options"] = ["list", "tuple", "set"]

    with pytest.raises(QuizFormatError, match="index 1"):
        parse_quiz_response(json.dumps(payload))


def test_parse_quiz_response_rejects_out_of_range_answer():
    payload = json.loads(_quiz_json())
    payload["questions"][0]["correctAnswer"] = 4

    with pytest.raises(QuizFormatError, match="index 0"):
        parse_quiz_response(json.dumps(payload))


def test_evaluate_quiz_scores_three_of_five():
    questions = [_question(0), _question(1), _question(2), _question(3), _question(0)]

    result = evaluate_quiz(questions, [0, 1, 0, 3, 2])

    assert result.score == 3
    assert result.total_questions == 5
    assert result.percentage == 60
    assert result.correct_answers == [True, True, False, True, False]
    assert evaluate_quiz(questions, [0, 1, 0, 3, 2]) == result


def test_evaluate_quiz_rounds_half_up():
    questions = [_question(0)] * 8

    assert evaluate_quiz(questions, [0, 0, 0, 1, 1, 1, 1, 1]).percentage == 38
    assert percentage_of(1, 3) == 33
    assert percentage_of(2, 3) == 67
    assert percentage_of(0, 0) == 0


@pytest.mark.parametrize("answers", [[], [0], [0, 1, 2]])
def test_evaluate_quiz_rejects_mismatched_answers(answers):
    with pytest.raises(InvalidEvaluationDataError):
        evaluate_quiz([_question(0), _question(1)], answers)


def test_evaluate_quiz_rejects_empty_quiz():
    with pytest.raises(InvalidEvaluationDataError):
        evaluate_quiz([], [])


def test_fallback_feedback_bands():
    assert fallback_feedback(19, 20, "Python").startswith("Outstanding work on this Python quiz")
    assert fallback_feedback(17, 20, "Python").startswith("Great job!")
    assert fallback_feedback(15, 20, "Python").startswith("Good effort")
    assert fallback_feedback(13, 20, "Python").startswith("You completed")
    assert "learning opportunity" in fallback_feedback(11, 20, "Python")
    assert "11/20" in fallback_feedback(11, 20, "Python")


def test_mastery_levels_and_badges():
    assert mastery_level(85) == "Expert"
    assert mastery_level(70) == "Proficient"
    assert mastery_level(50) == "Competent"
    assert mastery_level(49) == "Developing"
    assert earned_badges("SQL", 40) == ["SQL Explorer"]
    assert earned_badges("SQL", 80) == ["SQL Explorer", "Skill Achiever", "Domain Expert"]


def test_quiz_prompt_names_topic_count_and_format():
    messages = build_quiz_messages("data structures", "hard", 7)

    assert [m["role"] for m in messages] == ["system", "user"]
    assert "Return ONLY valid JSON" in messages[0]["content"]
    user = messages[1]["content"]
    assert 'hard-level quiz about "data structures"' in user
    assert "exactly 7 multiple-choice questions" in user
    assert '"title": "Data structures Quiz - Hard Level"' in user
    assert "correctAnswer" in user


def test_feedback_prompt_includes_score_and_percentage():
    messages = build_feedback_messages(4, 5, "Networking")

    assert "4/5 (80%) on a Networking quiz" in messages[1]["content"]


def test_request_quiz_parses_gateway_reply():
    gateway = FakeGateway(reply="```json\n" + _quiz_json() + "\n```")
    service = LLMQuizService(gateway=gateway)

    quiz = service.request_quiz("python", "medium", 2)

    assert len(quiz.questions) == 2
    messages, kwargs = gateway.calls[0]
    assert kwargs == {"temperature": 0.7, "max_tokens": 3000}
    assert "python" in messages[1]["content"]


def test_generate_quiz_returns_none_on_failure():
    service = LLMQuizService(gateway=FakeGateway(reply="not a quiz at all"))
    assert service.generate_quiz("python") is None

    limited = LLMQuizService(gateway=FakeGateway(error=GatewayRateLimitError("Rate limit exceeded")))
    assert limited.generate_quiz("python") is None


def test_request_quiz_propagates_classified_errors():
    service = LLMQuizService(gateway=FakeGateway(error=GatewayRateLimitError("Rate limit exceeded")))

    with pytest.raises(GatewayRateLimitError):
        service.request_quiz("python")


def test_generate_feedback_uses_model_text():
    gateway = FakeGateway(reply="  Lovely work on recursion.  ")
    service = LLMQuizService(gateway=gateway)

    assert service.generate_feedback(4, 5, "Algorithms") == "Lovely work on recursion."
    assert gateway.calls[0][1] == {"temperature": 0.8, "max_tokens": 300}


def test_generate_feedback_falls_back_on_gateway_error():
    service = LLMQuizService(gateway=FakeGateway(error=GatewayRateLimitError("Rate limit exceeded")))

    assert service.generate_feedback(11, 20, "Python") == fallback_feedback(11, 20, "Python")


@pytest.mark.parametrize("bad_option", [None, {}, 3])
def test_parse_quiz_response_rejects_non_string_options(bad_option):
    payload = json.loads(_quiz_json())
    payload["questions"][1]["options"][2] = bad_option

    with pytest.raises(QuizFormatError, match="index 1"):
        parse_quiz_response(json.dumps(payload))
