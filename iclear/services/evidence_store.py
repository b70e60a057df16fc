"""
Evidence storage

The workflow engine never inspects evidence bytes; it stores the reference
returned by upload() and hands it back to delete(). S3 is used in production,
the local disk store in development and tests.
"""

import io
import os
from datetime import datetime
from typing import Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app, redirect, send_from_directory
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from iclear.utils.exceptions import FileUploadError, NotFoundError
from iclear.utils.helpers import ensure_directory_exists, log_info
from iclear.utils.validators import validate_file_extension

IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'webp'}
CONTENT_TYPES = {
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'webp': 'image/webp',
    'pdf': 'application/pdf',
}


def _file_size(file) -> int:
    file.seek(0, 2)  # Seek to end
    size = file.tell()
    file.seek(0)  # Reset to beginning
    return size


WIDE_GRAYSCALE_MODES = {'I', 'I;16', 'I;16B', 'I;16L'}


def _compress_image(data: bytes, max_size: Tuple[int, int], quality: int) -> Tuple[bytes, str]:
    """Re-encode an image as JPEG, keeping whichever encoding is smaller"""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise FileUploadError(f"File is not a valid image: {e}")

    try:
        # JPEG only stores 8-bit L and RGB
        if img.mode in WIDE_GRAYSCALE_MODES:
            img = img.convert('I').point(lambda v: v * (1 / 256)).convert('L')
        elif img.mode == 'F':
            img = img.convert('L')
        elif img.mode not in ('RGB', 'L'):
            img = img.convert('RGB')

        img.thumbnail(max_size, Image.Resampling.LANCZOS)

        output = io.BytesIO()
        img.save(output, format='JPEG', quality=quality, optimize=True)
    except (OSError, ValueError) as e:
        raise FileUploadError(f"Image could not be processed: {e}")
    compressed = output.getvalue()

    if len(compressed) < len(data):
        return compressed, 'jpg'
    return data, None


def prepare_evidence(file) -> Tuple[bytes, str]:
    """
    Validate an uploaded evidence file and return its bytes and extension

    Args:
        file: werkzeug FileStorage (or any object with filename/read/seek)

    Returns:
        Tuple of (data, extension)

    Raises:
        FileUploadError: If the file is missing, too large or of a disallowed type
    """
    if not file or not getattr(file, 'filename', None):
        raise FileUploadError("No file provided")

    allowed = current_app.config['ALLOWED_EVIDENCE_EXTENSIONS']
    if not validate_file_extension(file.filename, allowed):
        raise FileUploadError(
            f"Invalid file format. Supported formats: {', '.join(sorted(allowed)).upper()}"
        )

    max_bytes = current_app.config['EVIDENCE_MAX_BYTES']
    if _file_size(file) > max_bytes:
        raise FileUploadError(f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")

    extension = file.filename.rsplit('.', 1)[1].lower()
    data = file.read()

    if extension in IMAGE_EXTENSIONS:
        data, new_extension = _compress_image(
            data,
            current_app.config['EVIDENCE_IMAGE_MAX_SIZE'],
            current_app.config['EVIDENCE_IMAGE_QUALITY'],
        )
        extension = new_extension or extension

    return data, extension


def build_evidence_key(student_id: int, case_id: int, requirement_id: int, extension: str) -> str:
    """Storage key for one evidence file"""
    timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S_%f")
    name = secure_filename(f"{case_id}_{requirement_id}_{timestamp}.{extension}")
    return f"evidence/{student_id}/{name}"


class S3EvidenceStore:
    """Evidence store backed by an S3 bucket"""

    def __init__(self, bucket_name: str, region: str,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None,
                 client=None):
        self.bucket_name = bucket_name
        self._client = client or boto3.client(
            's3',
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )

    def upload(self, data: bytes, key: str) -> str:
        extension = key.rsplit('.', 1)[-1]
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=CONTENT_TYPES.get(extension, 'application/octet-stream'),
            )
        except (ClientError, BotoCoreError) as e:
            raise FileUploadError(f"S3 upload error: {e}")
        return key

    def delete(self, evidence_ref: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket_name, Key=evidence_ref)
        except (ClientError, BotoCoreError) as e:
            raise FileUploadError(f"S3 delete error: {e}")

    def url(self, evidence_ref: str, expiration: int = 3600) -> str:
        """Temporary presigned download link"""
        try:
            return self._client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': evidence_ref},
                ExpiresIn=expiration,
            )
        except (ClientError, BotoCoreError) as e:
            raise FileUploadError(f"S3 presigned URL error: {e}")

    def send(self, evidence_ref: str):
        """Redirect to a presigned link"""
        return redirect(self.url(evidence_ref))


class LocalEvidenceStore:
    """Evidence store writing into a directory on local disk"""

    def __init__(self, root: str, url_prefix: str = '/api/evidence'):
        self.root = root
        self.url_prefix = url_prefix.rstrip('/')
        ensure_directory_exists(root)

    def _path(self, evidence_ref: str) -> str:
        path = os.path.abspath(os.path.join(self.root, evidence_ref))
        if not path.startswith(os.path.abspath(self.root) + os.sep):
            raise FileUploadError("Invalid evidence reference")
        return path

    def upload(self, data: bytes, key: str) -> str:
        path = self._path(key)
        ensure_directory_exists(os.path.dirname(path))
        with open(path, 'wb') as fh:
            fh.write(data)
        return key

    def delete(self, evidence_ref: str) -> None:
        path = self._path(evidence_ref)
        try:
            os.remove(path)
        except FileNotFoundError:
            raise FileUploadError(f"Evidence file {evidence_ref} not found")

    def url(self, evidence_ref: str) -> str:
        """Download link served by the evidence route"""
        return f"{self.url_prefix}/{evidence_ref}"

    def send(self, evidence_ref: str):
        """Response streaming the file from disk"""
        path = self._path(evidence_ref)
        if not os.path.exists(path):
            raise NotFoundError("Evidence file not found")
        return send_from_directory(os.path.dirname(path), os.path.basename(path))


def init_evidence_store(app) -> None:
    """Create the configured evidence store and attach it to the app"""
    backend = app.config['EVIDENCE_STORE']
    if backend == 's3':
        store = S3EvidenceStore(
            bucket_name=app.config['S3_BUCKET_NAME'],
            region=app.config['AWS_REGION'],
            access_key_id=app.config['AWS_ACCESS_KEY_ID'],
            secret_access_key=app.config['AWS_SECRET_ACCESS_KEY'],
        )
    elif backend == 'local':
        store = LocalEvidenceStore(app.config['UPLOAD_FOLDER'])
    else:
        raise ValueError(f"Unknown EVIDENCE_STORE backend: {backend}")

    app.extensions['iclear_evidence_store'] = store
    with app.app_context():
        log_info(f"Evidence store: {backend}")


def get_evidence_store():
    """Evidence store of the current application"""
    return current_app.extensions['iclear_evidence_store']
