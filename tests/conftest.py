import os

os.environ.setdefault("NEUROBRIDGE_DATABASE_URL", "sqlite:///./test_neurobridge.db")
os.environ["OPENROUTER_API_KEY"] = ""
