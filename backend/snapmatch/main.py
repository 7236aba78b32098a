from flask import Blueprint, current_app, jsonify, send_from_directory
from flask_login import current_user, login_required, logout_user

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the SnapMatch game server!'})

@main.route('/session')
def check_session():
    if not current_user.is_authenticated:
        return jsonify({'success': False, 'message': 'No active session'}), 401
    return jsonify({
        'success': True,
        'player': current_user.to_dict(),
        'room_code': current_user.room.code,
    })

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})

@main.route('/uploads/<path:filename>')
def uploaded_photo(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)
