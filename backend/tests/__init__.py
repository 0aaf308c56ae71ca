"""
Digestion Service Test Suite

Test Structure:
    tests/
    ├── conftest.py          # Shared fixtures (settings, clocks, mocks)
    ├── unit/                # Unit tests (isolated, Redis and LLM mocked)
    │   ├── test_job_queue.py       # Priority queue, backoff, dead letters
    │   ├── test_chunker.py         # Token windows and chunk merging
    │   ├── test_processor.py       # Pipeline checkpoints and cancellation
    │   └── ...
    └── integration/         # Whole pipeline inside one process
        └── test_pipeline.py

Running Tests:
    # Run all tests
    pytest tests/ -v

    # Run only unit tests
    pytest tests/unit/ -v

    # Run only the end-to-end pipeline tests
    pytest -m integration -v

    # Run with coverage
    pytest tests/ --cov=digestion --cov-report=html
"""
