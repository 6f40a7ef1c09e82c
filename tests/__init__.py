"""
Test Suite

Structure:
    tests/
    ├── conftest.py         # Pytest fixtures
    ├── fakes.py            # In-memory stores, lock and channel
    ├── unit/               # Selector, dispatcher, coordinator, repositories, channel
    └── integration/        # API endpoint tests

To run tests:
    pytest tests/
    pytest tests/unit/
    pytest tests/integration/
"""
