"""Game domain services: rooms, rounds, scoring, timers and stats.

This package contains the game mechanics that HTTP routes and socket
handlers call into, keeping transport concerns separated from the room and
round rules. ``build_game_services`` wires one instance of each per app.
"""
from dataclasses import dataclass

from flask import current_app

from .engine import RoundEngine
from .images import ImageCatalog
from .locks import RoomLocks
from .orchestrator import RoomOrchestrator
from .registry import RoomRegistry
from .scheduler import StageScheduler
from .stats import StatsAggregator
from .store import SqlStore


@dataclass
class GameServices:
    store: SqlStore
    locks: RoomLocks
    registry: RoomRegistry
    engine: RoundEngine
    orchestrator: RoomOrchestrator
    stats: StatsAggregator


def build_game_services(app, socketio, transport, scheduler=None, images=None) -> GameServices:
    cfg = app.config
    store = SqlStore()
    locks = RoomLocks()
    registry = RoomRegistry(app, store, locks, code_attempts=int(cfg.get('ROOM_CODE_ATTEMPTS', 10)))
    engine = RoundEngine(
        app,
        registry,
        store,
        locks,
        scheduler or StageScheduler(app, socketio),
        images=images or ImageCatalog(),
        decay_km=float(cfg.get('SCORE_DECAY_KM', 2000)),
        intro_sec=int(cfg.get('ROUND_INTRO_DURATION_SEC', 0)),
        min_players=int(cfg.get('MIN_PLAYERS', 2)),
    )
    orchestrator = RoomOrchestrator(app, registry, engine, locks, transport)
    return GameServices(store, locks, registry, engine, orchestrator, StatsAggregator(store))


def game_services() -> GameServices:
    return current_app.extensions['geoscope']
