"""AI chat gateway layer.

Routes one chat message per call from a caller identity to the caller's
chosen AI vendor with:
  - Per-identity sliding-window Admission Controller
  - Vendor-Specific Adapters (OpenAI, Anthropic, Gemini wire formats)
  - Provider Registry (provider id -> adapter)
  - Chat Gateway orchestrator (validate, admit, resolve key, dispatch)
"""
