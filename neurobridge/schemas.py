from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Difficulty = Literal["easy", "medium", "hard"]
QuizSourceName = Literal["bank", "generated"]
RecommendationStatus = Literal["pending", "recommended", "not_recommended"]


class QuizQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    options: List[str] = Field(min_length=4, max_length=4)
    correct_answer: int = Field(alias="correctAnswer", ge=0, le=3)
    explanation: Optional[str] = None


class QuizData(BaseModel):
    title: str = ""
    questions: List[QuizQuestion] = Field(min_length=1)


class EvaluationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    score: int
    total_questions: int = Field(alias="totalQuestions")
    percentage: int
    correct_answers: List[bool] = Field(alias="correctAnswers")


class Domain(BaseModel):
    id: str
    name: str
    description: str = ""
    questions: List[QuizQuestion] = Field(default_factory=list)


class Category(BaseModel):
    id: str
    name: str
    description: str = ""
    domains: List[Domain] = Field(default_factory=list)


class DomainOut(BaseModel):
    id: str
    name: str
    description: str
    question_count: int


class CategoryOut(BaseModel):
    id: str
    name: str
    description: str
    domains: List[DomainOut]


class GenerateQuizRequest(BaseModel):
    topic: str
    difficulty: Difficulty = "medium"
    question_count: int = Field(default=5, ge=1, le=30)

    @model_validator(mode="after")
    def topic_required(self):
        if not self.topic.strip():
            raise ValueError("A quiz topic is required")
        return self


class EvaluateQuizRequest(BaseModel):
    questions: List[QuizQuestion]
    answers: List[int]


class FeedbackRequest(BaseModel):
    score: int = Field(ge=0)
    total: int = Field(ge=1)
    topic: str


class FeedbackResponse(BaseModel):
    feedback: str


class StartSessionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    source: QuizSourceName = "generated"
    quiz_type: str = ""
    difficulty: Difficulty = "medium"
    question_count: int = Field(default=10, ge=1, le=30)


class SelectCategoryRequest(BaseModel):
    category_id: str


class SelectDomainRequest(BaseModel):
    domain_id: str


class AnswerRequest(BaseModel):
    option_index: int = Field(ge=0, le=3)


class QuestionPromptOut(BaseModel):
    question: str
    options: List[str]


class QuizSessionOut(BaseModel):
    session_id: str
    user_id: str
    source: QuizSourceName
    step: str
    category_id: Optional[str] = None
    domain_id: Optional[str] = None
    generating: bool = False
    title: str = ""
    current_question: int = 0
    total_questions: int = 0
    question: Optional[QuestionPromptOut] = None
    answers: List[int] = Field(default_factory=list)
    notice: str = ""
    evaluation: Optional[EvaluationResult] = None
    mastery_level: str = ""
    badges: List[str] = Field(default_factory=list)
    review: List[QuizQuestion] = Field(default_factory=list)
    feedback: str = ""
    feedback_ready: bool = False


class ProfileIn(BaseModel):
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: Literal["candidate", "manager"] = "candidate"


class ProfileOut(ProfileIn):
    user_id: str
    created_at: Optional[datetime] = None


class CandidateDetailsIn(BaseModel):
    phone: str = ""
    address: str = ""
    skills: List[str] = Field(default_factory=list)
    experience_years: Optional[int] = Field(default=None, ge=0)
    education: str = ""
    current_position: str = ""
    linkedin_profile: str = ""
    github_profile: str = ""
    bio: str = ""


class AccessibilityPreferences(BaseModel):
    high_contrast: bool = False
    reduced_motion: bool = False
    font_size: int = Field(default=16, ge=12, le=24)
    color_theme: Literal["default", "warm", "cool", "monochrome"] = "default"
    sound_enabled: bool = False
    keyboard_navigation: bool = False


class CandidateDetailsOut(CandidateDetailsIn):
    user_id: str
    accessibility_preferences: AccessibilityPreferences
    profile_completed: bool
    created_at: Optional[datetime] = None


class ProfileStepOut(BaseModel):
    id: str
    title: str
    description: str
    fields: List[str]
    complete: bool


class ProfileCompletionOut(BaseModel):
    steps: List[ProfileStepOut]
    completed_steps: int
    total_steps: int
    profile_completed: bool


class RemarkIn(BaseModel):
    remarks: str
    rating: int = Field(ge=1, le=5)
    recommendation_status: RecommendationStatus = "pending"

    @model_validator(mode="after")
    def remarks_required(self):
        if not self.remarks.strip():
            raise ValueError("Please provide remarks and a rating")
        return self


class RemarkOut(BaseModel):
    id: int
    manager_id: str
    candidate_id: str
    remarks: str
    rating: int
    recommendation_status: RecommendationStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CandidateOut(CandidateDetailsIn):
    user_id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    created_at: Optional[datetime] = None
    latest_remark: Optional[RemarkOut] = None


class CandidateReport(BaseModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    skills: List[str] = Field(default_factory=list)
    experience_years: int = 0
    current_position: str = ""
    bio: str = ""
    rating: int = 0
    remarks: str = "No remarks yet"
    recommendation_status: str = "pending"


class ReportSummaryOut(BaseModel):
    total: int
    recommended: int
    pending: int
    avg_rating: float


class ReportsResponse(BaseModel):
    summary: ReportSummaryOut
    candidates: List[CandidateReport]


class ChartSeriesOut(BaseModel):
    label: str
    labels: List[str]
    values: List[float]


class ManagerAnalyticsResponse(BaseModel):
    experience_distribution: ChartSeriesOut
    top_skills: ChartSeriesOut
    candidate_growth: ChartSeriesOut
    quiz_type_distribution: ChartSeriesOut
    domain_performance: ChartSeriesOut


class QuizResultOut(BaseModel):
    id: int
    user_id: str
    quiz_type: str
    domain_id: str
    score: int
    total_questions: int
    percentage: int
    answers: List[int]
    ai_generated: bool
    completed_at: datetime


class QuizProgressOut(BaseModel):
    category_id: str
    category_name: str
    completed: int
    total: int
    percentage: int
    latest_result: Optional[QuizResultOut] = None


class PersonalInfoOut(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    current_position: str = ""
    experience: Optional[int] = None
    education: str = ""
    bio: str = ""
    linkedin: str = ""
    github: str = ""


class AchievementOut(BaseModel):
    title: str
    description: str
    level: Literal["excellent", "good"]
    date: str


class CertificationOut(BaseModel):
    name: str
    score: str
    date: str
    badge: Literal["gold", "silver", "bronze"]


class ResumeData(BaseModel):
    personal_info: PersonalInfoOut
    skills: List[str]
    achievements: List[AchievementOut]
    certifications: List[CertificationOut]
    quiz_results: List[QuizResultOut]
    generated_at: str
