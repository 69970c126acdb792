"""Leaderboards and personal statistics.

Pure projections over the GameResult log; nothing here reads live room or
round state. Grouping happens in memory after one filtered query.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from geoscope.models import GameResult, User


def _display_name(user: Optional[User], user_id: str) -> str:
    if user is not None and user.username:
        return user.username
    return user_id


class _PlayerAggregate:
    __slots__ = ('user_id', 'user', 'games', 'score_sum', 'best_score', 'best_distance', 'last_played')

    def __init__(self, user_id, user):
        self.user_id = user_id
        self.user = user
        self.games = 0
        self.score_sum = 0
        self.best_score = 0
        self.best_distance = None
        self.last_played = None

    def add(self, result: GameResult) -> None:
        self.games += 1
        self.score_sum += result.score
        self.best_score = max(self.best_score, result.score)
        if result.distance is not None:
            self.best_distance = result.distance if self.best_distance is None else min(self.best_distance, result.distance)
        if self.last_played is None or result.created_at > self.last_played:
            self.last_played = result.created_at

    @property
    def avg_score(self) -> float:
        return self.score_sum / self.games if self.games else 0.0


class StatsAggregator:

    def __init__(self, store):
        self.store = store

    def _aggregate(self, mode: Optional[str] = None) -> Dict[str, _PlayerAggregate]:
        players: Dict[str, _PlayerAggregate] = {}
        for result in self.store.query_results(mode=mode, players_only=True):
            agg = players.get(result.user_id)
            if agg is None:
                agg = players[result.user_id] = _PlayerAggregate(result.user_id, result.user)
            agg.add(result)
        return players

    def global_leaderboard(self, limit: int = 10, mode: str = 'all') -> List[dict]:
        """Top players by best single-round score, ties broken by average score."""
        players = list(self._aggregate(mode).values())
        players.sort(key=lambda a: (
            -a.best_score,
            -a.avg_score,
            -(a.last_played.timestamp() if a.last_played else 0),
            a.user_id,
        ))
        rows = []
        for rank, agg in enumerate(players[:limit], start=1):
            rows.append({
                'rank': rank,
                'id': agg.user_id,
                'username': _display_name(agg.user, agg.user_id),
                'best_score': agg.best_score,
                'total_games': agg.games,
                'avg_score': round(agg.avg_score),
                'best_distance': agg.best_distance,
                'last_played': agg.last_played.isoformat() if agg.last_played else None,
            })
        return rows

    def recent_winners(self, limit: int = 10, hours: int = 24, now: Optional[datetime] = None) -> List[dict]:
        now = now or datetime.utcnow()
        results = self.store.query_results(
            since=now - timedelta(hours=hours),
            players_only=True,
            order=[GameResult.score.desc(), GameResult.distance.asc().nullslast(), GameResult.created_at.desc()],
            limit=limit,
        )
        return [
            {
                'rank': rank,
                'id': r.user_id,
                'username': _display_name(r.user, r.user_id),
                'score': r.score,
                'distance': r.distance,
                'mode': r.mode,
                'room_code': r.room_code,
                'round_index': r.round_index,
                'timestamp': r.created_at.isoformat(),
            }
            for rank, r in enumerate(results, start=1)
        ]

    def global_rank(self, user_id: str) -> int:
        """1 + number of players whose best score beats this user's best.

        A user with no results ranks below everyone who has played.
        """
        players = self._aggregate()
        mine = players.get(user_id)
        if mine is None:
            return 1 + len(players)
        return 1 + sum(1 for a in players.values() if a.best_score > mine.best_score)

    def personal_stats(self, user_id: str) -> dict:
        results = self.store.query_results(user_id=user_id, order=[GameResult.created_at.asc(), GameResult.id.asc()])
        rank = self.global_rank(user_id)
        if not results:
            return {
                'total_games': 0,
                'solo_games': 0,
                'multiplayer_games': 0,
                'best_score': 0,
                'avg_score': 0,
                'best_distance': 0,
                'avg_distance': 0,
                'total_distance': 0,
                'global_rank': rank,
                'last_played': None,
                'first_played': None,
                'recent_games': [],
            }

        distances = [r.distance for r in results if r.distance is not None]
        scores = [r.score for r in results]
        recent = sorted(results, key=lambda r: (r.created_at, r.id), reverse=True)[:10]
        return {
            'total_games': len(results),
            'solo_games': sum(1 for r in results if r.mode == 'solo'),
            'multiplayer_games': sum(1 for r in results if r.mode == 'multiplayer'),
            'best_score': max(scores),
            'avg_score': round(sum(scores) / len(scores)),
            'best_distance': min(distances) if distances else 0,
            'avg_distance': round(sum(distances) / len(distances)) if distances else 0,
            'total_distance': round(sum(distances)),
            'global_rank': rank,
            'last_played': max(r.created_at for r in results).isoformat(),
            'first_played': min(r.created_at for r in results).isoformat(),
            'recent_games': [r.to_dict() for r in recent],
        }
