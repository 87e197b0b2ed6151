"""
RUN SCRIPT - Start the Zysculpt server
======================================

PURPOSE:
  Single entry point to start the backend. Run this once per user/machine;
  the server then handles chat, sculpt, roadmap and export requests for that user.

WHAT IT DOES:
  - Imports the FastAPI app from zysculpt.main.
  - Runs it with uvicorn on host 0.0.0.0 and port 8000.
  - reload=True restarts the server whenever a Python file changes.

USAGE:
  python run.py

  Then open http://localhost:8000/docs for the interactive API docs.

NOTE:
  Set GROQ_API_KEY in .env for the AI features. Add SUPABASE_URL and
  SUPABASE_ANON_KEY to sync your profile and sessions; without them the
  server runs local-only and forgets everything on restart.
"""

import uvicorn

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    uvicorn.run(
        "zysculpt.main:app",  # String path to the FastAPI app instance (module:variable).
        host="0.0.0.0",       # Listen on all network interfaces so other devices can connect.
        port=8000,            # HTTP port; change if 8000 is already in use.
        reload=True           # Auto-restart when .py files change (useful during development).
    )
