"""
Revision Planner Test Suite

Test Structure:
    tests/
    ├── conftest.py          # Shared fixtures and configuration
    ├── fakes.py             # In-memory PlannerRepository
    └── unit/                # Unit tests (isolated, no external dependencies)
        ├── test_schedule_engine.py   # Schedule generation and classification
        ├── test_snooze.py            # Single and bulk snoozes, cascade
        ├── test_session_recorder.py  # Session lifecycle and schedule advance
        ├── test_insights.py          # KPIs, streaks, upcoming load
        ├── test_metrics.py           # Per-user metric formulas and scopes
        ├── test_leaderboard.py       # Ranking, recompute batches, comparison
        ├── test_sql_repository.py    # SQL repository (mocked session)
        ├── test_planner_api.py       # Routers via TestClient
        ├── test_health.py            # Health endpoints
        ├── test_scheduler.py         # Nightly recompute job
        └── test_config.py            # Settings and YAML loading

Running Tests:
    # Run all tests
    pytest backend/tests/ -v
"""
