import logging
from concurrent.futures import Executor

from src.config import EngineConfig
from src.practice.adapters.content_loader import (
    ExerciseCatalog,
    load_exercises,
    load_rotation_table,
)
from src.practice.adapters.db_manager import DatabaseManager
from src.practice.adapters.sqlite_repository import SQLiteProgressRepository
from src.practice.adapters.supabase_repository import SupabaseProgressRepository
from src.practice.application.ledger import ProgressLedger
from src.practice.application.service import PracticeService
from src.practice.domain.ports import IProgressRepository
from src.practice.domain.rotation import ChallengeRotator
from src.shared.observability import configure_observability
from src.shared.telemetry import Telemetry

telemetry = Telemetry("Bootstrap")

_observability_configured = False


def init_observability(config: type[EngineConfig] = EngineConfig) -> None:
    """Installs logging, OTLP export and the metrics server once per process."""
    global _observability_configured
    if _observability_configured:
        return

    # Console fallback for local runs
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    configure_observability(metrics_port=config.METRICS_PORT)
    _observability_configured = True


# --- Composition Root ---
def build_repository(config: type[EngineConfig] = EngineConfig) -> IProgressRepository:
    if config.USE_SQLITE:
        telemetry.log_info("Using SQLite repository", path=config.DB_PATH)
        return SQLiteProgressRepository(DatabaseManager(config.DB_PATH))

    if not config.SUPABASE_URL or not config.SUPABASE_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set to sync remotely")
    telemetry.log_info("Using Supabase repository")
    return SupabaseProgressRepository(config.SUPABASE_URL, config.SUPABASE_KEY)


def create_service(
    repo: IProgressRepository | None = None,
    challenges_file: str = EngineConfig.CHALLENGES_FILE,
    executor: Executor | None = None,
) -> PracticeService:
    """
    Wires a ready-to-use service. Content problems surface here as
    ContentError, before any learner answer is graded.
    """
    init_observability()
    rotator = ChallengeRotator(load_rotation_table(challenges_file))
    ledger = ProgressLedger(repo if repo is not None else build_repository(), executor)
    return PracticeService(ledger, rotator)


def load_catalog(exercises_file: str = EngineConfig.EXERCISES_FILE) -> ExerciseCatalog:
    catalog = ExerciseCatalog(load_exercises(exercises_file))
    telemetry.log_info("Exercise catalog loaded", count=len(catalog))
    return catalog
