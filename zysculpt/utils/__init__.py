"""
UTILITIES PACKAGE
=================

Helpers used by the services (no HTTP, no business logic):

  ids   - now_ms() / new_id(): millisecond clock and time-derived unique ids.
  retry - with_retry(fn): awaits fn(); on failure retries with exponential backoff (Groq).
"""
