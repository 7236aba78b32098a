import os
import secrets
import time

from flask import current_app, url_for
from werkzeug.utils import secure_filename

from snapmatch.errors import UploadRejected

ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp', 'heic'}


def _extension(filename: str) -> str:
    name = secure_filename(filename or '')
    return name.rsplit('.', 1)[-1].lower() if '.' in name else ''


def _target(relative: str) -> str:
    return os.path.join(current_app.config['UPLOAD_FOLDER'], *relative.split('/'))


def save_photo(file, room, player, round_number: int) -> str:
    """Store an uploaded image and return its path under UPLOAD_FOLDER.

    Files land in ``<room_id>/<round>/<player_id>-<timestamp>-<nonce>.<ext>``,
    one file per upload. Nothing about the room changes here; the caller
    submits ``photo_url(path)`` and calls ``discard_photo`` if that fails.
    """
    if file is None or not file.filename:
        raise UploadRejected('Please select an image file')
    if not (file.mimetype or '').startswith('image/'):
        raise UploadRejected('Please select an image file')
    ext = _extension(file.filename)
    if ext not in ALLOWED_EXTENSIONS:
        raise UploadRejected('Please select an image file')

    max_bytes = int(current_app.config.get('MAX_UPLOAD_BYTES', 10 * 1024 * 1024))
    data = file.stream.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadRejected(f'Image must be less than {max_bytes // (1024 * 1024)}MB', status_code=413)
    if not data:
        raise UploadRejected('Uploaded file is empty')

    name = f"{player.id}-{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"
    relative = f"{room.id}/{round_number}/{name}"
    target = _target(relative)
    try:
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, 'xb') as fh:
            fh.write(data)
    except OSError as exc:
        current_app.logger.warning(f"[upload-failed] room={room.code} round={round_number} error={exc}")
        raise UploadRejected('Failed to upload photo. Please try again.', status_code=503)
    current_app.logger.info(f"[upload] room={room.code} round={round_number} file={relative} bytes={len(data)}")
    return relative


def photo_url(relative: str) -> str:
    return url_for('main.uploaded_photo', filename=relative, _external=True)


def discard_photo(relative: str) -> None:
    """Remove a stored photo whose submission was not recorded."""
    try:
        os.remove(_target(relative))
    except FileNotFoundError:
        return
    current_app.logger.info(f"[upload-discard] file={relative}")
