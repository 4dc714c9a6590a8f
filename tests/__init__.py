"""
Archiver Test Suite
===================

Test organization mirrors the source code structure:
    tests/
    ├── test_core/          → Tests for archiver.core (config, models, exceptions)
    ├── test_infrastructure/→ Tests for archiver.infrastructure (blob stores, codec, pointers)
    ├── test_archiving/     → Tests for archiver.archiving (layout, upload/download)
    ├── test_integration/   → End-to-end producer/consumer scenarios
    ├── test_facade.py      → Tests for the async ArchiverService
    └── conftest.py         → Shared pytest fixtures

Running Tests:
    pytest                          # Run all tests
    pytest tests/test_core/         # Run only core tests
    pytest -m integration           # Run only integration tests
"""
