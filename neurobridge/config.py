import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
    OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    LLM_MODEL = os.getenv("NEUROBRIDGE_LLM_MODEL", "openai/gpt-4-turbo")
    APP_TITLE = os.getenv("NEUROBRIDGE_APP_TITLE", "NeuroBridge Quiz System")
    APP_URL = os.getenv("NEUROBRIDGE_APP_URL", "http://localhost:8000")
    DATABASE_URL = os.getenv("NEUROBRIDGE_DATABASE_URL", "sqlite:///./neurobridge.db")
    DEFAULT_QUESTION_COUNT = int(os.getenv("NEUROBRIDGE_QUESTION_COUNT", 10))
    DEFAULT_DIFFICULTY = os.getenv("NEUROBRIDGE_DIFFICULTY", "medium")
