"""
Integration Tests

End-to-end runs of the digestion pipeline inside one process: API or queue
submission, the asyncio worker, the real chunker and digestion client, and
the progress and event services. The LLM provider, capture storage and
result storage are mocked, so no external service is needed.

Run with: pytest -m integration
"""
