"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (zysculpt.main) calls these services;
they don't handle HTTP, only state, sync, LLM calls, and documents.

MODULES:
    session_store   - Sessions and the active id; local-first with remote mirroring.
    profile_store   - The user profile with debounced remote saves.
    sync            - Fire-and-forget, per-key ordered remote writes.
    remote_store    - Supabase (PostgREST + auth) client and the field maps.
    ai_service      - Groq via LangChain: streaming chat, one-shot and JSON completions.
    chat_engine     - One streamed chat turn.
    sculpt_engine   - Conversation -> final document.
    structured      - Quiz items and career roadmaps from JSON output.
    career_service  - Roadmap task toggles, daily wins, dashboard helpers.
    export          - Markdown -> DOCX (python-docx) / PDF (reportlab).
"""
