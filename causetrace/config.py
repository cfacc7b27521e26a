from functools import lru_cache
import logging
import os

from dotenv import load_dotenv

load_dotenv()

############### CONFIG FLAGS ############
LOCAL_LLMS = os.getenv("LOCAL_LLMS", "false").lower() in ("1", "true", "yes")  # Ollama instead of Gemini
FAST_MODEL_NAME = os.getenv("FAST_MODEL_NAME", "gemini-2.5-flash")
AGENT_MODEL_NAME = os.getenv("AGENT_MODEL_NAME", "gemini-2.5-pro")
PRO_MODEL_NAME = os.getenv("PRO_MODEL_NAME", "gemini-2.5-pro")
LOCAL_MODEL_NAME = os.getenv("LOCAL_MODEL_NAME", "qwen3:4b")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "90"))  # seconds per model call
TOOL_TIMEOUT = float(os.getenv("TOOL_TIMEOUT", "30"))  # seconds per research call
THINKING_BUDGET = int(os.getenv("THINKING_BUDGET", "4000"))
MAX_TOOL_TURNS = 5  # model turns in the chain builder research loop
SEARCH_MAX_RESULTS = 5
SEARCH_MAX_CHARACTERS = 3000
SCRAPE_MAX_CHARS = 4000
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///causetrace.db")
VAULT_URL = os.getenv("VAULT_URL", "http://localhost:27124")
VAULT_FOLDER = os.getenv("VAULT_FOLDER", "TRACE Patient Notes")
EXA_API_KEY = os.getenv("EXA_API_KEY")
FIRECRAWL_API_KEY = os.getenv("FIRECRAWL_API_KEY")
VAULT_API_KEY = os.getenv("VAULT_API_KEY")
#########################################
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(),
                    format='%(asctime)s - %(levelname)s - %(message)s',
                    filename=os.getenv("LOG_FILE"),
                    filemode='a')
logger = logging.getLogger("causetrace")


def _build_model(model_name: str, temperature: float, reasoning: bool = False):
    if LOCAL_LLMS:
        from langchain_ollama import ChatOllama

        return ChatOllama(
            model=LOCAL_MODEL_NAME,
            temperature=temperature,
            reasoning=reasoning,
            client_kwargs={"timeout": LLM_TIMEOUT},
        )

    from langchain_google_genai import ChatGoogleGenerativeAI

    options = {}
    if reasoning:
        # Thought summaries come back as "thinking" content blocks
        options = {"thinking_budget": THINKING_BUDGET, "include_thoughts": True}
    return ChatGoogleGenerativeAI(
        model=model_name,
        temperature=temperature,
        timeout=LLM_TIMEOUT,
        max_retries=1,
        **options,
    )


@lru_cache(maxsize=None)
def get_fast_model():
    """Model for symptom parsing and quick traces."""
    return _build_model(FAST_MODEL_NAME, temperature=0.1)


@lru_cache(maxsize=None)
def get_agent_model():
    """Reasoning model driving the causal chain research loop."""
    return _build_model(AGENT_MODEL_NAME, temperature=0.2, reasoning=True)


@lru_cache(maxsize=None)
def get_pro_model():
    """Model for triaged recommendations."""
    return _build_model(PRO_MODEL_NAME, temperature=0)
