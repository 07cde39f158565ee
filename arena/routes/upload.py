from flask import Blueprint, current_app, request, jsonify
from flask_login import login_required

from ..exceptions import InvalidArgumentError
from ..uploads import to_data_url

bp = Blueprint('upload', __name__)


@bp.route('/upload', methods=['POST'])
@login_required
def upload_file():
    file = request.files.get('file')
    if not file or not file.filename:
        raise InvalidArgumentError('No file uploaded', field='file')
    return jsonify(to_data_url(file, current_app.config['MAX_UPLOAD_SIZE']))


@bp.route('/upload/multiple', methods=['POST'])
@login_required
def upload_files():
    files = [f for f in request.files.getlist('files') if f and f.filename]
    if not files:
        raise InvalidArgumentError('No files uploaded', field='files')
    max_files = current_app.config['MAX_UPLOAD_FILES']
    if len(files) > max_files:
        raise InvalidArgumentError(f'At most {max_files} files per upload', field='files')
    max_size = current_app.config['MAX_UPLOAD_SIZE']
    return jsonify({'files': [to_data_url(f, max_size) for f in files]})
