from flask import current_app
from sqlalchemy.exc import IntegrityError

from snapmatch import db
from snapmatch.errors import Conflict, InvalidRequest, PreconditionFailed
from snapmatch.models import Room, Prompt, Submission, Vote
from . import feed
from .lobby import ensure_member


def _insert(room: Room, record, table: str, duplicate_message: str):
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(duplicate_message)
    feed.publish_change(room.code, table, 'insert', record.to_dict())
    feed.publish_state(room.code)
    return record


def submit_prompt(room: Room, player, text) -> Prompt:
    ensure_member(room, player)
    if room.status != 'prompts':
        raise PreconditionFailed('Prompts are not being collected')
    text = (text or '').strip()
    if not text:
        raise InvalidRequest('Prompt text is required')
    max_len = int(current_app.config.get('PROMPT_MAX_LENGTH', 100))
    if len(text) > max_len:
        raise InvalidRequest(f'Prompt must be at most {max_len} characters')
    if Prompt.query.filter_by(room_id=room.id, player_id=player.id).first():
        raise Conflict('You already submitted a prompt')
    prompt = Prompt(room_id=room.id, player_id=player.id, text=text)
    return _insert(room, prompt, 'prompts', 'You already submitted a prompt')


def ensure_photo_open(room: Room, player) -> None:
    """Raise unless ``player`` may still submit a photo this round."""
    ensure_member(room, player)
    if room.status != 'playing' or room.round_phase != 'upload':
        raise PreconditionFailed('Photos are not being collected')
    if Submission.query.filter_by(room_id=room.id, round=room.current_round, player_id=player.id).first():
        raise Conflict('Already submitted a photo this round')


def submit_photo(room: Room, player, photo_url) -> Submission:
    """Record the player's photo for the current round.

    Accepted for as long as the round stays in upload, including after the
    deadline if the host has not advanced yet.
    """
    ensure_photo_open(room, player)
    photo_url = (photo_url or '').strip()
    if not photo_url:
        raise InvalidRequest('photo_url is required')
    submission = Submission(room_id=room.id, round=room.current_round, player_id=player.id, photo_url=photo_url)
    return _insert(room, submission, 'submissions', 'Already submitted a photo this round')


def submit_vote(room: Room, player, submission_id) -> Vote:
    ensure_member(room, player)
    if room.status != 'playing' or room.round_phase != 'voting':
        raise PreconditionFailed('Not accepting votes at this time')
    try:
        submission_id = int(submission_id)
    except (TypeError, ValueError):
        raise InvalidRequest('submission_id is required')
    submission = Submission.query.filter_by(id=submission_id, room_id=room.id, round=room.current_round).first()
    if not submission:
        raise InvalidRequest('Invalid submission')
    if submission.player_id == player.id:
        raise InvalidRequest('You cannot vote for your own photo')
    if Vote.query.filter_by(room_id=room.id, round=room.current_round, voter_id=player.id).first():
        raise Conflict('Already voted this round')
    vote = Vote(room_id=room.id, round=room.current_round, voter_id=player.id, submission_id=submission.id)
    return _insert(room, vote, 'votes', 'Already voted this round')
