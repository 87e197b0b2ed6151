"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all Zysculpt settings: API keys, model names, remote store
  credentials, sync timings and the persona prompts. Designed for single-user
  use: each person runs their own copy of this backend with their own .env.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Exposes GROQ_API_KEYS / GROQ_MODEL for chat, sculpt and structured calls.
  - Exposes SUPABASE_URL / SUPABASE_ANON_KEY and decides ONCE, at import time,
    whether the remote store is configured (REMOTE_CONFIGURED). When it is not,
    the whole app runs local-only for the lifetime of the process.
  - Defines the profile debounce delay and the minimum "saving" indicator time.
  - Holds the persona lines per session type and the user-facing error notices.

USAGE:
  Import what you need: `from config import GROQ_API_KEYS, PERSONAS, REMOTE_CONFIGURED`
  All services import from here so behaviour is consistent.
"""

import os
import logging
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logger = logging.getLogger("Zysculpt")


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to default on a bad value."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


# ============================================================================
# GROQ API CONFIGURATION
# ============================================================================
# Groq is the LLM provider for chat turns, sculpting and structured output.
# You can set one key (GROQ_API_KEY) or several: GROQ_API_KEY_2, GROQ_API_KEY_3, ...
# Keys are used round-robin; a failed non-streaming call moves on to the next key.

def _load_groq_api_keys() -> list:
    """
    Load all GROQ API keys from the environment.
    Reads GROQ_API_KEY first, then GROQ_API_KEY_2, GROQ_API_KEY_3, ... until
    a number has no value. Returns a list of non-empty key strings.
    """
    keys = []
    first = os.getenv("GROQ_API_KEY", "").strip()
    if first:
        keys.append(first)
    i = 2
    while True:
        k = os.getenv(f"GROQ_API_KEY_{i}", "").strip()
        if not k:
            break
        keys.append(k)
        i += 1
    return keys


GROQ_API_KEYS = _load_groq_api_keys()
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
# Speech-to-text model used when a chat turn carries a voice note.
GROQ_TRANSCRIBE_MODEL = os.getenv("GROQ_TRANSCRIBE_MODEL", "whisper-large-v3-turbo")

CHAT_TEMPERATURE = _env_float("CHAT_TEMPERATURE", 0.7)
SCULPT_TEMPERATURE = _env_float("SCULPT_TEMPERATURE", 0.4)

# Maximum length (characters) for a single user message.
MAX_MESSAGE_LENGTH = 32_000


# ============================================================================
# REMOTE STORE (SUPABASE) CONFIGURATION
# ============================================================================
# Profiles and sessions are mirrored to a Supabase project (tables "profiles"
# and "sessions"). The mirror is best-effort: local state is authoritative.
# Without credentials the app is local-only from start to finish; this is a
# static decision made here, never re-checked per call.

SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip().rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "").strip()
SUPABASE_TIMEOUT_SECONDS = _env_float("SUPABASE_TIMEOUT_SECONDS", 15.0)

REMOTE_CONFIGURED = bool(SUPABASE_URL and SUPABASE_ANON_KEY and "placeholder" not in SUPABASE_URL)

if not REMOTE_CONFIGURED:
    logger.warning("Supabase credentials not detected. Profile and session sync are disabled (local-only mode).")


# ============================================================================
# SYNC TIMINGS
# ============================================================================
# Profile edits are debounced: only the last edit after this much quiet time is written.
PROFILE_SYNC_DELAY_SECONDS = _env_float("PROFILE_SYNC_DELAY_SECONDS", 2.0)
# The "saving" flag stays up at least this long so fast writes don't flicker.
MIN_SAVING_INDICATOR_SECONDS = _env_float("MIN_SAVING_INDICATOR_SECONDS", 1.0)


# ============================================================================
# PERSONAS AND PROMPT TEXT
# ============================================================================
# One persona line per session type. The system instruction for a chat turn is
# built from the persona, the user's profile and the target job.

PERSONAS = {
    "resume": "You are an ATS Expert. Focus on quantifiable achievements and industry keywords.",
    "cover-letter": "You are a Hiring Manager. Focus on cultural fit and clear value propositions.",
    "career-copilot": "You are a Strategic Career Mentor. Focus on long-term growth and interview prep.",
    "resignation-letter": "You are an HR Professional. Draft a firm but gracious exit statement.",
}

CHAT_INSTRUCTIONS = (
    "INSTRUCTIONS: Always use Markdown. Be concise. Ask high-value questions if you need "
    'more details to "Sculpt" the final document.'
)

# How much of the background text goes into the chat system instruction.
BACKGROUND_SNAPSHOT_CHARS = 800

DEFAULT_SESSION_TITLES = {
    "resume": "New Resume",
    "cover-letter": "New Cover Letter",
    "resignation-letter": "Resignation Letter",
    "career-copilot": "Career Roadmap",
}

GENERIC_TARGET_LABEL = "General professional role"

# Shown to the user in place of an assistant reply / document when the AI call fails.
CHAT_ERROR_MESSAGE = "I'm sorry, I encountered an error. Please try again."
SCULPT_ERROR_MESSAGE = "Failed to sculpt the document. Please try again."

# User-friendly message when Groq rate limit (daily token quota) is exceeded.
RATE_LIMIT_MESSAGE = (
    "You've reached your daily API limit for this assistant. "
    "Please try again in a few hours."
)


# ============================================================================
# CAREER ROADMAP AND KNOWLEDGE HUB
# ============================================================================
CAREER_PLAN_DAYS = 30
QUIZ_DEFAULT_COUNT = 5


# ============================================================================
# EXPORT
# ============================================================================
# PDF export is always A4 with these fixed margins (millimetres).
EXPORT_MARGIN_MM = 15
DEFAULT_FONT_FAMILY = "Calibri"
DEFAULT_BULLET = "•"


# ============================================================================
# SCULPT DIRECTIVES
# ============================================================================
# First block of the one-shot "sculpt" prompt, per session type. The rest of
# the prompt (background, conversation, target, contact details) is assembled
# by the sculpt engine.

SCULPT_DIRECTIVES = {
    "resume": (
        'As an ATS expert, "sculpt" a complete, ATS-optimized resume in Markdown from the material below.\n'
        "- Use clear headings: Professional Summary, Work Experience, Skills, Education.\n"
        "- Work in the keywords of the target role.\n"
        "- Start work experience bullets with action verbs and include quantifiable results (X%, $Y, Z users).\n"
        "- Use a clean, standard single-column layout (no tables, columns or graphics)."
    ),
    "cover-letter": (
        "As an experienced hiring manager, sculpt a one-page cover letter in Markdown from the material below.\n"
        "- Open with a specific hook for the target role, show clear value and cultural fit, close with a call to action.\n"
        "- Put the candidate's contact details in the header."
    ),
    "resignation-letter": (
        "As an HR professional, draft a firm but gracious resignation letter in Markdown from the material below.\n"
        "- CRITICAL: Use the real personal information provided to fill the header and signature.\n"
        "- DO NOT use generic placeholders like [Your Name], [Date] or [Company]."
    ),
    "career-copilot": (
        "As a strategic career mentor, write a concise career strategy brief in Markdown from the material below.\n"
        "- Cover where the user is now, the target, the skill gaps, and concrete next steps with timelines."
    ),
}
