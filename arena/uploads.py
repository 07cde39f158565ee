import base64
import os

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .exceptions import InvalidArgumentError

ALLOWED_EXTENSIONS = {'jpeg', 'jpg', 'png', 'gif', 'webp'}


def _extension(filename: str) -> str:
    return os.path.splitext(filename or '')[1].lstrip('.').lower()


def is_allowed_image(file: FileStorage) -> bool:
    mimetype = (file.mimetype or '').lower()
    subtype = mimetype.split('/', 1)[1] if mimetype.startswith('image/') else ''
    return _extension(file.filename) in ALLOWED_EXTENSIONS and subtype in ALLOWED_EXTENSIONS


def to_data_url(file: FileStorage, max_size: int) -> dict:
    """Validate an uploaded image and inline it as a base64 data URL."""
    if not is_allowed_image(file):
        raise InvalidArgumentError('Only image files are allowed (jpeg, jpg, png, gif, webp)', field='file')

    content = file.read()
    if len(content) > max_size:
        raise InvalidArgumentError(f'File too large (max {max_size // (1024 * 1024)}MB)', field='file')

    encoded = base64.b64encode(content).decode('ascii')
    return {
        'url': f'data:{file.mimetype};base64,{encoded}',
        'filename': secure_filename(file.filename),
        'originalName': file.filename,
        'size': len(content),
        'mimetype': file.mimetype,
    }
