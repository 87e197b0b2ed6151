"""
ZYSCULPT APPLICATION PACKAGE
============================

The Python package for the Zysculpt backend: a chat-driven assistant that
collects context about a job target through conversation, then "sculpts" a
resume, cover letter or resignation letter and exports it to Word or PDF.

  from zysculpt.main import app
  from zysculpt.services.session_store import SessionStore

FILE STRUCTURE:
  zysculpt/
    __init__.py   - This file; marks 'zysculpt' as a package.
    main.py       - FastAPI app and all HTTP endpoints.
    models.py     - Domain models, API bodies and the service exceptions.
    services/     - Stores, remote sync, the AI provider and the engines built on it.
    utils/        - Helpers: time-derived ids, retry with backoff.
"""
