from datetime import date
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from src.config import EngineConfig
from src.practice.adapters.sqlite_repository import SQLiteProgressRepository
from src.practice.bootstrap import build_repository, create_service, init_observability
from src.practice.domain.models import ContentError

CHALLENGES = str(Path(__file__).resolve().parents[2] / "data" / "daily_challenges.json")


def _config(**overrides):
    return type("TestConfig", (EngineConfig,), overrides)


def test_sqlite_repository_is_default(tmp_path):
    repo = build_repository(_config(USE_SQLITE=True, DB_PATH=str(tmp_path / "p.db")))

    assert isinstance(repo, SQLiteProgressRepository)
    repo.db_manager.close()


def test_supabase_requires_credentials():
    with pytest.raises(RuntimeError):
        build_repository(_config(USE_SQLITE=False, SUPABASE_URL=None, SUPABASE_KEY=None))


def test_supabase_repository_selected():
    config = _config(USE_SQLITE=False, SUPABASE_URL="https://x.supabase.co", SUPABASE_KEY="k")

    with patch("src.practice.bootstrap.SupabaseProgressRepository") as supabase_repo:
        repo = build_repository(config)

    supabase_repo.assert_called_once_with("https://x.supabase.co", "k")
    assert repo is supabase_repo.return_value


def test_create_service_wires_rotation():
    repo = Mock()
    repo.get_streak.return_value = None

    service = create_service(repo=repo, challenges_file=CHALLENGES)

    assert service.ledger.repo is repo
    assert service.todays_challenge(date(2025, 1, 1)).id == "challenge-001"


def test_create_service_fails_fast_on_missing_content(tmp_path):
    with pytest.raises(ContentError):
        create_service(repo=Mock(), challenges_file=str(tmp_path / "none.json"))


@pytest.fixture
def fresh_observability(monkeypatch):
    monkeypatch.setattr("src.practice.bootstrap._observability_configured", False)


def test_create_service_configures_observability_once(fresh_observability):
    repo = Mock()
    repo.get_streak.return_value = None

    with patch("src.practice.bootstrap.configure_observability") as configure:
        create_service(repo=repo, challenges_file=CHALLENGES)
        create_service(repo=repo, challenges_file=CHALLENGES)

    configure.assert_called_once_with(metrics_port=EngineConfig.METRICS_PORT)


def test_init_observability_passes_metrics_port(fresh_observability):
    with patch("src.practice.bootstrap.configure_observability") as configure:
        init_observability(_config(METRICS_PORT=9464))

    configure.assert_called_once_with(metrics_port=9464)
