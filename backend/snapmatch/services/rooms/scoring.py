from collections import Counter
from typing import Dict, Iterable, List, Optional

from snapmatch import db


def _submission_order(submission):
    return (submission.created_at, submission.id)


def tally_votes(submissions: Iterable, votes: Iterable, round: Optional[int] = None) -> Dict[int, int]:
    """Count votes per submission.

    Every submission (of ``round`` when given) appears in the result, with 0
    when nobody voted for it. Votes pointing at unknown submissions are ignored.
    """
    counts = {s.id: 0 for s in submissions if round is None or s.round == round}
    for v in votes:
        if round is not None and v.round != round:
            continue
        if v.submission_id in counts:
            counts[v.submission_id] += 1
    return counts


def points_by_player(submissions: Iterable, votes: Iterable, round: Optional[int] = None) -> Dict[int, int]:
    """Votes received per author, optionally restricted to one round."""
    submissions = list(submissions)
    author_of = {s.id: s.player_id for s in submissions}
    counts = tally_votes(submissions, votes, round=round)
    points: Counter = Counter()
    for submission_id, count in counts.items():
        points[author_of[submission_id]] += count
    return dict(points)


def final_scores(players: Iterable, submissions: Iterable, votes: Iterable) -> Dict[int, int]:
    """Total votes received across every round, for every player.

    Recomputed from the full vote history so repeated calls agree.
    """
    points = points_by_player(submissions, votes)
    return {p.id: points.get(p.id, 0) for p in players}


def round_winner(submissions: Iterable, counts: Dict[int, int]):
    """Submission with the strictly highest vote count, else None."""
    best = None
    best_count = 0
    shared = False
    for s in submissions:
        count = counts.get(s.id, 0)
        if count > best_count:
            best, best_count, shared = s, count, False
        elif count == best_count and count > 0:
            shared = True
    if best is None or shared:
        return None
    return best


def round_leader(submissions: Iterable, counts: Dict[int, int]):
    """Top submission for the end-of-game recap.

    Ties go to the earliest submission. Returns ``(submission, tied)`` or
    ``(None, False)`` when no votes were cast.
    """
    ordered = sorted(submissions, key=_submission_order)
    top = max((counts.get(s.id, 0) for s in ordered), default=0)
    if top == 0:
        return None, False
    leaders = [s for s in ordered if counts.get(s.id, 0) == top]
    return leaders[0], len(leaders) > 1


def rank_players(players: Iterable) -> List[dict]:
    """Standings ordered by score, then join order; equal scores share a rank."""
    ordered = sorted(players, key=lambda p: (-(p.score or 0), p.created_at, p.id))
    standings = []
    previous_score = None
    rank = 0
    for position, p in enumerate(ordered, start=1):
        if p.score != previous_score:
            rank = position
            previous_score = p.score
        standings.append({'rank': rank, 'player_id': p.id, 'username': p.username, 'score': p.score or 0})
    return standings


def apply_final_scores(room) -> Dict[int, int]:
    """Write final scores onto the room's players. Caller commits."""
    scores = final_scores(room.players, room.submissions, room.votes)
    for p in room.players:
        p.score = scores[p.id]
        db.session.add(p)
    return scores
