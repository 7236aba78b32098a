from snapmatch import db, bcrypt
from flask_login import UserMixin
from datetime import datetime
import random
import secrets

# Room codes skip I and O so they can't be mistaken for 1 and 0
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ'
ROOM_STATUSES = ('waiting', 'prompts', 'playing', 'finished')
ROUND_PHASES = ('upload', 'reveal', 'voting', 'results')


def _isoformat(value):
    return value.isoformat() + 'Z' if value else None


def generate_room_code(length=4):
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def generate_session_token():
    return secrets.token_urlsafe(32)


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(4), unique=True, nullable=False, index=True)
    status = db.Column(db.String(16), default='waiting', nullable=False) # waiting, prompts, playing, finished
    current_round = db.Column(db.Integer, default=0, nullable=False)
    round_phase = db.Column(db.String(16), nullable=True) # upload, reveal, voting, results (only while playing)
    reveal_index = db.Column(db.Integer, default=0, nullable=False)
    phase_end_time = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    players = db.relationship('Player', back_populates='room', cascade='all, delete-orphan',
                              order_by='Player.id')
    prompts = db.relationship('Prompt', backref='room', cascade='all, delete-orphan',
                              order_by='Prompt.id')
    submissions = db.relationship('Submission', backref='room', cascade='all, delete-orphan',
                                  order_by='Submission.id')
    votes = db.relationship('Vote', backref='room', cascade='all, delete-orphan',
                            order_by='Vote.id')

    @property
    def total_rounds(self):
        return len(self.players)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'status': self.status,
            'current_round': self.current_round,
            'round_phase': self.round_phase,
            'reveal_index': self.reveal_index,
            'phase_end_time': _isoformat(self.phase_end_time),
            'created_at': _isoformat(self.created_at),
        }


class Player(UserMixin, db.Model):
    __tablename__ = 'player'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'username', name='uq_player_username_per_room'),
        db.Index('uq_player_one_host_per_room', 'room_id', unique=True,
                 sqlite_where=db.text('is_host'), postgresql_where=db.text('is_host')),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    username = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, default=0, nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    # bcrypt hash; the plain token only ever lives on the client
    session_token = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    room = db.relationship('Room', back_populates='players')

    def set_session_token(self, token):
        self.session_token = bcrypt.generate_password_hash(token).decode('utf-8')

    def check_session_token(self, token):
        try:
            return bcrypt.check_password_hash(self.session_token, token)
        except ValueError:
            return False

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'username': self.username,
            'score': self.score,
            'is_host': self.is_host,
            'created_at': _isoformat(self.created_at),
        }


class Prompt(db.Model):
    __tablename__ = 'prompt'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'player_id', name='uq_one_prompt_per_player'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    text = db.Column(db.String(255), nullable=False)
    round_number = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'player_id': self.player_id,
            'text': self.text,
            'round_number': self.round_number,
            'created_at': _isoformat(self.created_at),
        }


class Submission(db.Model):
    __tablename__ = 'submission'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'round', 'player_id', name='uq_one_submission_per_round'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    photo_url = db.Column(db.String(512), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'round': self.round,
            'player_id': self.player_id,
            'photo_url': self.photo_url,
            'created_at': _isoformat(self.created_at),
        }


class Vote(db.Model):
    __tablename__ = 'vote'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'round', 'voter_id', name='uq_one_vote_per_round'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    round = db.Column(db.Integer, nullable=False)
    voter_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    submission_id = db.Column(db.Integer, db.ForeignKey('submission.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'round': self.round,
            'voter_id': self.voter_id,
            'submission_id': self.submission_id,
            'created_at': _isoformat(self.created_at),
        }
