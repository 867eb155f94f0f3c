import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import List
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from neurobridge.catalog import build_source, quiz_progress
from neurobridge.database import Base, engine, get_db
from neurobridge.flow import FlowStep, InvalidTransitionError, QuizFlow, UnknownSelectionError
from neurobridge.gateway import (
    GatewayBillingError,
    GatewayConfigError,
    GatewayRateLimitError,
    QuizGenerationError,
)
from neurobridge.models import CandidateDetails, GeneratedResume, ManagerRemark, Profile, QuizResult
from neurobridge.profiles import accessibility_of, clean_skills, details_in_of, profile_completion, skills_of
from neurobridge.reports import (
    build_candidate_report,
    candidate_growth,
    domain_performance,
    experience_distribution,
    export_reports_csv,
    filter_reports,
    matches_search,
    quiz_type_distribution,
    report_filename,
    skill_distribution,
    summarize_reports,
)
from neurobridge.resume import ResumeIncompleteError, build_resume, render_resume_html, resume_filename
from neurobridge.schemas import (
    AccessibilityPreferences,
    AnswerRequest,
    CandidateDetailsIn,
    CandidateDetailsOut,
    CandidateOut,
    CategoryOut,
    EvaluateQuizRequest,
    EvaluationResult,
    FeedbackRequest,
    FeedbackResponse,
    GenerateQuizRequest,
    ManagerAnalyticsResponse,
    ProfileCompletionOut,
    ProfileIn,
    ProfileOut,
    QuestionPromptOut,
    QuizData,
    QuizProgressOut,
    QuizResultOut,
    QuizSessionOut,
    QuizSourceName,
    RemarkIn,
    RemarkOut,
    ReportsResponse,
    ResumeData,
    SelectCategoryRequest,
    SelectDomainRequest,
    StartSessionRequest,
)
from neurobridge.services import (
    InvalidEvaluationDataError,
    LLMQuizService,
    earned_badges,
    evaluate_quiz,
    fallback_feedback,
    mastery_level,
)


app = FastAPI(title="NeuroBridge")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)
service = LLMQuizService()

Base.metadata.create_all(bind=engine)

if not service.configured:
    logger.warning(
        "OpenRouter API key not configured: generated quizzes are unavailable and feedback uses fallback text"
    )


@dataclass
class QuizSession:
    user_id: str
    quiz_type: str
    flow: QuizFlow
    load_token: int = 0
    feedback: str = ""
    feedback_ready: bool = False
    result_id: int | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


_quiz_sessions: dict[str, QuizSession] = {}
_quiz_sessions_lock = threading.Lock()


def _get_session(session_id: str) -> QuizSession:
    with _quiz_sessions_lock:
        session = _quiz_sessions.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Quiz session not found")
    return session


def _apply(action, *args):
    try:
        return action(*args)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except UnknownSelectionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _session_out(session_id: str, session: QuizSession) -> QuizSessionOut:
    flow = session.flow
    question = flow.question
    evaluation = flow.evaluation if flow.step == FlowStep.RESULTS else None
    in_results = evaluation is not None
    return QuizSessionOut(
        session_id=session_id,
        user_id=session.user_id,
        source=flow.source.name,
        step=flow.step.value,
        category_id=flow.category_id,
        domain_id=flow.domain_id,
        generating=flow.generating,
        title=flow.quiz.title if flow.quiz else "",
        current_question=flow.current_question,
        total_questions=len(flow.quiz.questions) if flow.quiz else 0,
        question=QuestionPromptOut(question=question.question, options=question.options) if question else None,
        answers=list(flow.answers),
        notice=flow.notice,
        evaluation=evaluation,
        mastery_level=mastery_level(evaluation.percentage) if in_results else "",
        badges=earned_badges(flow.domain.name, evaluation.percentage) if in_results else [],
        review=list(flow.quiz.questions) if in_results else [],
        feedback=session.feedback,
        feedback_ready=session.feedback_ready,
    )


def _run_quiz_loading(session_id: str, token: int, domain):
    session = _get_session(session_id)
    source = session.flow.source
    error = ""
    try:
        quiz = source.load(domain)
    except QuizGenerationError as exc:
        quiz, error = None, str(exc)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Quiz loading crashed for session %s", session_id)
        quiz, error = None, f"Quiz generation failed: {exc}"

    with session.lock:
        if session.load_token != token or not session.flow.generating:
            logger.info("Discarding stale quiz load for session %s", session_id)
            return
        session.flow.finish_loading(quiz, error)
    logger.info(
        "Quiz session %s loaded domain=%s (questions=%s)",
        session_id,
        domain.id,
        len(quiz.questions) if quiz else 0,
    )


def _run_feedback(session_id: str, evaluation: EvaluationResult, topic: str):
    session = _get_session(session_id)
    try:
        feedback = service.generate_feedback(evaluation.score, evaluation.total_questions, topic)
    except Exception:  # noqa: BLE001
        logger.exception("Feedback generation crashed for session %s", session_id)
        feedback = fallback_feedback(evaluation.score, evaluation.total_questions, topic)

    with session.lock:
        if session.flow.evaluation is not evaluation:
            return
        session.feedback = feedback
        session.feedback_ready = True


def _persist_result(db: Session, session: QuizSession):
    flow = session.flow
    evaluation = flow.evaluation
    row = QuizResult(
        user_id=session.user_id,
        quiz_type=session.quiz_type or flow.category_id,
        domain_id=flow.domain_id,
        score=evaluation.score,
        total_questions=evaluation.total_questions,
        percentage=evaluation.percentage,
        answers_json=json.dumps(flow.answers),
        ai_generated=flow.source.ai_generated,
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Saving quiz result for user %s failed: %s", session.user_id, exc)
        flow.notice = "Your result could not be saved. Please contact support."
        return
    session.result_id = row.id
    logger.info(
        "Saved quiz result %s (user=%s, domain=%s, score=%s/%s)",
        row.id,
        session.user_id,
        row.domain_id,
        row.score,
        row.total_questions,
    )


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok", "llm_configured": service.configured}


@app.get("/api/catalog/{source_name}", response_model=List[CategoryOut])
def get_catalog(source_name: str):
    try:
        source = build_source(source_name, service)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return source.describe()


@app.post("/api/quiz-sessions", response_model=QuizSessionOut)
def start_quiz_session(payload: StartSessionRequest):
    source = build_source(payload.source, service, payload.difficulty, payload.question_count)
    session = QuizSession(user_id=payload.user_id, quiz_type=payload.quiz_type.strip(), flow=QuizFlow(source=source))
    session_id = str(uuid.uuid4())
    with _quiz_sessions_lock:
        _quiz_sessions[session_id] = session
    logger.info("Started %s quiz session %s for user %s", payload.source, session_id, payload.user_id)
    with session.lock:
        return _session_out(session_id, session)


@app.get("/api/quiz-sessions/{session_id}", response_model=QuizSessionOut)
def get_quiz_session(session_id: str):
    session = _get_session(session_id)
    with session.lock:
        return _session_out(session_id, session)


@app.post("/api/quiz-sessions/{session_id}/category", response_model=QuizSessionOut)
def select_session_category(session_id: str, payload: SelectCategoryRequest):
    session = _get_session(session_id)
    with session.lock:
        _apply(session.flow.select_category, payload.category_id)
        return _session_out(session_id, session)


@app.post("/api/quiz-sessions/{session_id}/back", response_model=QuizSessionOut)
def go_back_in_session(session_id: str):
    session = _get_session(session_id)
    with session.lock:
        _apply(session.flow.back)
        return _session_out(session_id, session)


@app.post("/api/quiz-sessions/{session_id}/domain", response_model=QuizSessionOut)
def select_session_domain(session_id: str, payload: SelectDomainRequest):
    session = _get_session(session_id)
    with session.lock:
        domain = _apply(session.flow.select_domain, payload.domain_id)
        session.load_token += 1
        token = session.load_token
        response = _session_out(session_id, session)

    logger.info("Loading quiz for session %s (domain=%s)", session_id, domain.id)
    thread = threading.Thread(target=_run_quiz_loading, args=(session_id, token, domain), daemon=True)
    thread.start()
    return response


@app.post("/api/quiz-sessions/{session_id}/answers", response_model=QuizSessionOut)
def answer_session_question(session_id: str, payload: AnswerRequest, db: Session = Depends(get_db)):
    session = _get_session(session_id)
    with session.lock:
        completed = _apply(session.flow.answer, payload.option_index)
        if completed:
            _persist_result(db, session)
            evaluation = session.flow.evaluation
            topic = session.flow.domain.name
        response = _session_out(session_id, session)

    if completed:
        thread = threading.Thread(target=_run_feedback, args=(session_id, evaluation, topic), daemon=True)
        thread.start()
    return response


@app.post("/api/quiz-sessions/{session_id}/retake", response_model=QuizSessionOut)
def retake_quiz(session_id: str):
    session = _get_session(session_id)
    with session.lock:
        session.flow.retake()
        session.load_token += 1
        session.feedback = ""
        session.feedback_ready = False
        session.result_id = None
        return _session_out(session_id, session)


@app.post("/api/quizzes/generate", response_model=QuizData)
def generate_quiz(payload: GenerateQuizRequest):
    logger.info(
        "Generate quiz request received (topic=%r, difficulty=%s, question_count=%s)",
        payload.topic,
        payload.difficulty,
        payload.question_count,
    )
    try:
        return service.request_quiz(payload.topic.strip(), payload.difficulty, payload.question_count)
    except GatewayConfigError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except GatewayBillingError as exc:
        raise HTTPException(status_code=402, detail=str(exc)) from exc
    except GatewayRateLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except QuizGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.post("/api/quizzes/evaluate", response_model=EvaluationResult)
def evaluate_submitted_quiz(payload: EvaluateQuizRequest):
    try:
        return evaluate_quiz(payload.questions, payload.answers)
    except InvalidEvaluationDataError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/quizzes/feedback", response_model=FeedbackResponse)
def quiz_feedback(payload: FeedbackRequest):
    return {"feedback": service.generate_feedback(payload.score, payload.total, payload.topic)}


def _profile_out(profile: Profile) -> ProfileOut:
    return ProfileOut(
        user_id=profile.user_id,
        email=profile.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
        role=profile.role,
        created_at=profile.created_at,
    )


@app.put("/api/profiles/{user_id}", response_model=ProfileOut)
def upsert_profile(user_id: str, payload: ProfileIn, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if not profile:
        profile = Profile(user_id=user_id)
        db.add(profile)
    profile.email = payload.email
    profile.first_name = payload.first_name
    profile.last_name = payload.last_name
    profile.role = payload.role
    db.commit()
    db.refresh(profile)
    return _profile_out(profile)


@app.get("/api/profiles/{user_id}", response_model=ProfileOut)
def get_profile(user_id: str, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_out(profile)


def _details_out(row: CandidateDetails) -> CandidateDetailsOut:
    return CandidateDetailsOut(
        user_id=row.user_id,
        **details_in_of(row).model_dump(),
        accessibility_preferences=accessibility_of(row),
        profile_completed=row.profile_completed,
        created_at=row.created_at,
    )


@app.put("/api/candidates/{user_id}/details", response_model=CandidateDetailsOut)
def upsert_candidate_details(user_id: str, payload: CandidateDetailsIn, db: Session = Depends(get_db)):
    details = payload.model_copy(update={"skills": clean_skills(payload.skills)})
    row = db.query(CandidateDetails).filter(CandidateDetails.user_id == user_id).first()
    if not row:
        row = CandidateDetails(user_id=user_id)
        db.add(row)

    row.phone = details.phone
    row.address = details.address
    row.skills_json = json.dumps(details.skills)
    row.experience_years = details.experience_years
    row.education = details.education
    row.current_position = details.current_position
    row.linkedin_profile = details.linkedin_profile
    row.github_profile = details.github_profile
    row.bio = details.bio
    row.profile_completed = profile_completion(details).profile_completed
    db.commit()
    db.refresh(row)
    logger.info("Saved candidate details for %s (profile_completed=%s)", user_id, row.profile_completed)
    return _details_out(row)


@app.get("/api/candidates/{user_id}/details", response_model=CandidateDetailsOut)
def get_candidate_details(user_id: str, db: Session = Depends(get_db)):
    row = db.query(CandidateDetails).filter(CandidateDetails.user_id == user_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Candidate details not found")
    return _details_out(row)


@app.get("/api/candidates/{user_id}/profile-completion", response_model=ProfileCompletionOut)
def get_profile_completion(user_id: str, db: Session = Depends(get_db)):
    row = db.query(CandidateDetails).filter(CandidateDetails.user_id == user_id).first()
    return profile_completion(details_in_of(row))


@app.get("/api/candidates/{user_id}/accessibility", response_model=AccessibilityPreferences)
def get_accessibility_preferences(user_id: str, db: Session = Depends(get_db)):
    row = db.query(CandidateDetails).filter(CandidateDetails.user_id == user_id).first()
    return accessibility_of(row)


@app.put("/api/candidates/{user_id}/accessibility", response_model=AccessibilityPreferences)
def update_accessibility_preferences(
    user_id: str,
    payload: AccessibilityPreferences,
    db: Session = Depends(get_db),
):
    row = db.query(CandidateDetails).filter(CandidateDetails.user_id == user_id).first()
    if not row:
        row = CandidateDetails(user_id=user_id)
        db.add(row)
    row.accessibility_json = payload.model_dump_json()
    db.commit()
    return payload


def _quiz_results_for(db: Session, user_id: str) -> List[QuizResultOut]:
    rows = (
        db.query(QuizResult)
        .filter(QuizResult.user_id == user_id)
        .order_by(QuizResult.completed_at.desc(), QuizResult.id.desc())
        .all()
    )
    return [
        QuizResultOut(
            id=row.id,
            user_id=row.user_id,
            quiz_type=row.quiz_type,
            domain_id=row.domain_id,
            score=row.score,
            total_questions=row.total_questions,
            percentage=row.percentage,
            answers=json.loads(row.answers_json or "[]"),
            ai_generated=row.ai_generated,
            completed_at=row.completed_at,
        )
        for row in rows
    ]


@app.get("/api/candidates/{user_id}/quiz-results", response_model=List[QuizResultOut])
def get_candidate_quiz_results(user_id: str, db: Session = Depends(get_db)):
    return _quiz_results_for(db, user_id)


@app.get("/api/candidates/{user_id}/quiz-progress", response_model=List[QuizProgressOut])
def get_candidate_quiz_progress(
    user_id: str,
    source: QuizSourceName = Query(default="bank"),
    db: Session = Depends(get_db),
):
    return quiz_progress(build_source(source, service), _quiz_results_for(db, user_id))


@app.post("/api/candidates/{user_id}/resume", response_model=ResumeData)
def generate_resume(user_id: str, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    details = db.query(CandidateDetails).filter(CandidateDetails.user_id == user_id).first()
    try:
        resume = build_resume(profile, details, skills_of(details), _quiz_results_for(db, user_id))
    except ResumeIncompleteError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    row = db.query(GeneratedResume).filter(GeneratedResume.user_id == user_id).first()
    if not row:
        row = GeneratedResume(user_id=user_id)
        db.add(row)
    row.resume_json = resume.model_dump_json()
    db.commit()
    logger.info(
        "Generated resume for %s (achievements=%s, certifications=%s)",
        user_id,
        len(resume.achievements),
        len(resume.certifications),
    )
    return resume


@app.get("/api/candidates/{user_id}/resume.html", response_class=HTMLResponse)
def download_resume(user_id: str, db: Session = Depends(get_db)):
    row = db.query(GeneratedResume).filter(GeneratedResume.user_id == user_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Resume not generated yet")
    resume = ResumeData.model_validate_json(row.resume_json)
    return HTMLResponse(
        content=render_resume_html(resume),
        headers={
            "Content-Disposition": (
                f'attachment; filename="{resume_filename(resume, ascii_only=True)}"; '
                f"filename*=UTF-8''{quote(resume_filename(resume))}"
            )
        },
    )


def _remark_out(remark: ManagerRemark) -> RemarkOut:
    return RemarkOut(
        id=remark.id,
        manager_id=remark.manager_id,
        candidate_id=remark.candidate_id,
        remarks=remark.remarks,
        rating=remark.rating,
        recommendation_status=remark.recommendation_status,
        created_at=remark.created_at,
        updated_at=remark.updated_at,
    )


def _latest_remarks(db: Session) -> dict[str, ManagerRemark]:
    latest: dict[str, ManagerRemark] = {}
    remarks = db.query(ManagerRemark).order_by(ManagerRemark.updated_at.desc(), ManagerRemark.id.desc()).all()
    for remark in remarks:
        latest.setdefault(remark.candidate_id, remark)
    return latest


@app.get("/api/manager/candidates", response_model=List[CandidateOut])
def list_candidates(search: str = Query(default=""), db: Session = Depends(get_db)):
    rows = db.query(CandidateDetails).order_by(CandidateDetails.created_at.asc()).all()
    if not rows:
        return []

    profiles = {
        p.user_id: p for p in db.query(Profile).filter(Profile.user_id.in_([r.user_id for r in rows])).all()
    }
    latest = _latest_remarks(db)
    candidates = []
    for row in rows:
        profile = profiles.get(row.user_id)
        first_name = profile.first_name if profile else ""
        last_name = profile.last_name if profile else ""
        email = profile.email if profile else "No email"
        skills = skills_of(row)
        if not matches_search(search, first_name=first_name, last_name=last_name, email=email, skills=skills):
            continue
        remark = latest.get(row.user_id)
        candidates.append(
            CandidateOut(
                user_id=row.user_id,
                first_name=first_name,
                last_name=last_name,
                email=email,
                created_at=row.created_at,
                latest_remark=_remark_out(remark) if remark else None,
                **details_in_of(row).model_dump(),
            )
        )
    return candidates


@app.put("/api/manager/{manager_id}/remarks/{candidate_id}", response_model=RemarkOut)
def upsert_remark(manager_id: str, candidate_id: str, payload: RemarkIn, db: Session = Depends(get_db)):
    has_profile = db.query(Profile).filter(Profile.user_id == candidate_id).first()
    has_details = db.query(CandidateDetails).filter(CandidateDetails.user_id == candidate_id).first()
    if not has_profile and not has_details:
        raise HTTPException(status_code=404, detail="Candidate not found")

    remark = (
        db.query(ManagerRemark)
        .filter(ManagerRemark.manager_id == manager_id, ManagerRemark.candidate_id == candidate_id)
        .first()
    )
    if not remark:
        remark = ManagerRemark(manager_id=manager_id, candidate_id=candidate_id)
        db.add(remark)
    remark.remarks = payload.remarks.strip()
    remark.rating = payload.rating
    remark.recommendation_status = payload.recommendation_status
    db.commit()
    db.refresh(remark)
    logger.info("Saved remark %s (manager=%s, candidate=%s)", remark.id, manager_id, candidate_id)
    return _remark_out(remark)


@app.get("/api/manager/analytics", response_model=ManagerAnalyticsResponse)
def manager_analytics(db: Session = Depends(get_db)):
    details = db.query(CandidateDetails).all()
    results = db.query(QuizResult).order_by(QuizResult.completed_at.desc()).all()
    return {
        "experience_distribution": experience_distribution(row.experience_years for row in details),
        "top_skills": skill_distribution(skills_of(row) for row in details),
        "candidate_growth": candidate_growth(row.created_at for row in details),
        "quiz_type_distribution": quiz_type_distribution(results),
        "domain_performance": domain_performance(results),
    }


def _collect_reports(db: Session):
    profiles = db.query(Profile).filter(Profile.role == "candidate").order_by(Profile.created_at.asc()).all()
    details = {row.user_id: row for row in db.query(CandidateDetails).all()}
    latest = _latest_remarks(db)
    return [
        build_candidate_report(
            profile,
            details.get(profile.user_id),
            latest.get(profile.user_id),
            skills=skills_of(details.get(profile.user_id)),
        )
        for profile in profiles
    ]


@app.get("/api/reports", response_model=ReportsResponse)
def get_reports(
    status: str = Query(default="all"),
    search: str = Query(default=""),
    db: Session = Depends(get_db),
):
    reports = _collect_reports(db)
    return {"summary": summarize_reports(reports), "candidates": filter_reports(reports, status, search)}


@app.get("/api/reports/export.csv")
def export_reports(
    status: str = Query(default="all"),
    search: str = Query(default=""),
    db: Session = Depends(get_db),
):
    reports = filter_reports(_collect_reports(db), status, search)
    logger.info("Exporting %s candidate reports (status=%s, search=%r)", len(reports), status, search)
    return Response(
        content=export_reports_csv(reports),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{report_filename()}"'},
    )
