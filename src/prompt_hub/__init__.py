"""
prompt-hub relay package.

Provides:
- Run registry with single-shot claims
- OpenAI-compatible provider clients (OpenAI, LM Studio) and their stream decoder
- SSE relay served via FastAPI
"""
