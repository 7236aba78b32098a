"""Per-viewer room view, derived from the raw room collections.

``project_room_view`` is a pure function: it reads the room, its players,
prompts, submissions and votes plus the viewer's player id, and recomputes
every aggregate (current prompt, vote counts, "my" entries, standings) from
scratch on each call.
"""
from datetime import datetime
from typing import Iterable, Optional

from .scoring import points_by_player, rank_players, round_leader, round_winner, tally_votes


def _by_creation(items):
    return sorted(items, key=lambda item: (item.created_at, item.id))


def _time_remaining(phase_end_time: Optional[datetime], now: datetime) -> Optional[int]:
    if phase_end_time is None:
        return None
    return max(0, int((phase_end_time - now).total_seconds()))


def _recap(prompts, submissions, votes, total_rounds):
    recap = []
    for number in range(1, total_rounds + 1):
        prompt = next((p for p in prompts if p.round_number == number), None)
        round_subs = [s for s in submissions if s.round == number]
        counts = tally_votes(round_subs, votes, round=number)
        leader, tied = round_leader(round_subs, counts)
        recap.append({
            'round': number,
            'prompt': prompt.text if prompt else None,
            'winner': dict(leader.to_dict(), vote_count=counts[leader.id]) if leader else None,
            'tied': tied,
        })
    return recap


def project_room_view(room, players: Iterable, prompts: Iterable, submissions: Iterable,
                      votes: Iterable, viewer_id: Optional[int], now: Optional[datetime] = None,
                      min_players: int = 3) -> dict:
    now = now or datetime.utcnow()
    players = _by_creation(players)
    prompts = list(prompts)
    submissions = _by_creation(submissions)
    votes = list(votes)

    me = next((p for p in players if p.id == viewer_id), None)
    is_host = bool(me and me.is_host)
    total_rounds = len(players)
    current = room.current_round
    playing = room.status == 'playing'
    phase = room.round_phase if playing else None

    current_prompt = next((p for p in prompts if current and p.round_number == current), None)
    my_prompt = next((p for p in prompts if me and p.player_id == me.id), None)
    round_subs = [s for s in submissions if s.round == current] if playing else []
    round_votes = [v for v in votes if v.round == current] if playing else []
    counts = tally_votes(round_subs, round_votes)
    voters = {}
    for v in round_votes:
        voters.setdefault(v.submission_id, []).append(v.voter_id)

    submission_views = [
        dict(s.to_dict(), vote_count=counts[s.id], voter_ids=voters.get(s.id, []))
        for s in round_subs
    ]
    # Photos stay hidden until the host reveals them
    if phase == 'upload':
        submission_views = [s for s in submission_views if me and s['player_id'] == me.id]
    elif phase == 'reveal':
        submission_views = submission_views[:room.reveal_index]
    my_submission = next((s for s in round_subs if me and s.player_id == me.id), None)
    my_vote = next((v for v in round_votes if me and v.voter_id == me.id), None)
    winner = round_winner(round_subs, counts) if phase == 'results' else None

    prompted_ids = {p.player_id for p in prompts}
    submitted_ids = {s.player_id for s in round_subs}
    voted_ids = {v.voter_id for v in round_votes}
    player_views = [
        dict(p.to_dict(),
             has_prompt=p.id in prompted_ids,
             has_submitted=p.id in submitted_ids,
             has_voted=p.id in voted_ids)
        for p in players
    ]

    remaining = _time_remaining(room.phase_end_time, now) if phase == 'upload' else None
    deadline_passed = phase == 'upload' and room.phase_end_time is not None and now >= room.phase_end_time
    all_submitted = bool(players) and all(p.id in submitted_ids for p in players)
    reveal_done = room.reveal_index >= len(round_subs)

    # Precondition failures surface as disabled actions
    actions = {
        'can_start_game': is_host and room.status == 'waiting' and total_rounds >= min_players,
        'can_submit_prompt': bool(me) and room.status == 'prompts' and my_prompt is None,
        'can_start_rounds': is_host and room.status == 'prompts' and bool(players) and prompted_ids >= {p.id for p in players},
        'can_submit_photo': bool(me) and phase == 'upload' and my_submission is None,
        'can_step_reveal': is_host and phase == 'reveal' and not reveal_done,
        'can_vote': bool(me) and phase == 'voting' and my_vote is None
                    and any(s.player_id != me.id for s in round_subs),
        'can_advance': is_host and phase in ('upload', 'reveal', 'voting')
                       and (phase != 'upload' or all_submitted or deadline_passed),
        'can_next_round': is_host and phase == 'results',
        'can_play_again': is_host and room.status == 'finished',
    }

    view = {
        'room': room.to_dict(),
        'total_rounds': total_rounds,
        'players': player_views,
        'me': me.to_dict() if me else None,
        'is_host': is_host,
        'current_prompt': current_prompt.to_dict() if current_prompt else None,
        'my_prompt': my_prompt.to_dict() if my_prompt else None,
        'prompt_count': len(prompts),
        'submissions': submission_views,
        'revealed_submissions': submission_views,
        'submission_count': len(round_subs),
        'my_submission': my_submission.to_dict() if my_submission else None,
        'my_vote': my_vote.to_dict() if my_vote else None,
        'round_points': points_by_player(round_subs, round_votes) if phase == 'results' else {},
        'round_winner_id': winner.id if winner else None,
        'time_remaining': remaining,
        'deadline_passed': deadline_passed,
        'all_submitted': all_submitted,
        'is_last_round': playing and current >= total_rounds,
        'actions': actions,
    }
    if room.status == 'finished':
        view['standings'] = rank_players(players)
        view['recap'] = _recap(prompts, submissions, votes, total_rounds)
    return view
