"""
Video Production CRM
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, usage tracking,
      deterministic local stub)

Feature prompts and response validation live in app.services.ai_service.
"""
