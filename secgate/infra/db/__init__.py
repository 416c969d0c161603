from .connection import get_engine, get_session, init_db
from .history import list_gate_runs, save_gate_run

__all__ = ["get_engine", "get_session", "init_db", "list_gate_runs", "save_gate_run"]
