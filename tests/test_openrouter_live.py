import os

import pytest

from neurobridge.gateway import LLMGateway
from neurobridge.services import LLMQuizService


@pytest.mark.integration
@pytest.mark.skipif(not os.getenv("NEUROBRIDGE_LIVE_OPENROUTER_KEY"), reason="NEUROBRIDGE_LIVE_OPENROUTER_KEY not set")
def test_live_generate_quiz_and_feedback():
    service = LLMQuizService(gateway=LLMGateway(api_key=os.environ["NEUROBRIDGE_LIVE_OPENROUTER_KEY"]))

    quiz = service.request_quiz("SQL joins", "easy", 3)

    assert len(quiz.questions) == 3
    for q in quiz.questions:
        assert len(q.options) == 4
        assert 0 <= q.correct_answer <= 3
        assert q.question.strip()

    feedback = service.generate_feedback(2, 3, "SQL joins")
    assert feedback.strip()
