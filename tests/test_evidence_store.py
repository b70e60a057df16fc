import io

import pytest
from botocore.exceptions import ClientError
from PIL import Image
from werkzeug.datastructures import FileStorage

from iclear.services.evidence_store import (
    LocalEvidenceStore, S3EvidenceStore, _compress_image, build_evidence_key, init_evidence_store,
    prepare_evidence
)
from iclear.utils.exceptions import FileUploadError


def noise_png(size=(800, 400)):
    output = io.BytesIO()
    Image.effect_noise(size, 64).save(output, format='PNG')
    return output.getvalue()


def upload(data, name):
    return FileStorage(stream=io.BytesIO(data), filename=name)


def test_pdf_is_stored_unchanged(ctx):
    data, extension = prepare_evidence(upload(b'%PDF-1.4 receipt', 'Receipt.PDF'))
    assert (data, extension) == (b'%PDF-1.4 receipt', 'pdf')


def test_images_are_recompressed_and_resized(app, ctx):
    app.config['EVIDENCE_IMAGE_MAX_SIZE'] = (200, 200)
    original = noise_png()

    data, extension = prepare_evidence(upload(original, 'receipt.png'))

    assert extension == 'jpg'
    assert len(data) < len(original)
    image = Image.open(io.BytesIO(data))
    assert image.format == 'JPEG'
    assert max(image.size) <= 200


def test_sixteen_bit_grayscale_is_converted(ctx):
    wide = Image.effect_noise((400, 400), 64).convert('I').point(lambda v: v * 256)
    output = io.BytesIO()
    wide.save(output, format='PNG')

    data, extension = prepare_evidence(upload(output.getvalue(), 'scan.png'))

    assert extension == 'jpg'
    image = Image.open(io.BytesIO(data))
    assert (image.format, image.mode) == ('JPEG', 'L')


def test_float_image_is_converted(ctx):
    output = io.BytesIO()
    Image.effect_noise((400, 400), 64).convert('F').save(output, format='TIFF')

    data, extension = _compress_image(output.getvalue(), (200, 200), 80)

    assert extension == 'jpg'
    assert Image.open(io.BytesIO(data)).mode == 'L'


def test_unencodable_image_becomes_upload_error(ctx, monkeypatch):
    data = noise_png()
    def failing_save(self, *args, **kwargs):
        raise OSError("cannot write mode as JPEG")
    monkeypatch.setattr(Image.Image, 'save', failing_save)

    with pytest.raises(FileUploadError):
        _compress_image(data, (200, 200), 80)


def test_broken_image_is_refused(ctx):
    with pytest.raises(FileUploadError):
        prepare_evidence(upload(b'not really a png', 'receipt.png'))


def test_missing_file_is_refused(ctx):
    with pytest.raises(FileUploadError):
        prepare_evidence(None)


def test_evidence_key_is_scoped_to_student():
    key = build_evidence_key(7, 12, 3, 'pdf')
    assert key.startswith('evidence/7/12_3_')
    assert key.endswith('.pdf')


def test_local_store_round_trip(tmp_path):
    store = LocalEvidenceStore(str(tmp_path))

    ref = store.upload(b'data', 'evidence/7/a.pdf')

    assert (tmp_path / 'evidence' / '7' / 'a.pdf').read_bytes() == b'data'
    store.delete(ref)
    assert not (tmp_path / 'evidence' / '7' / 'a.pdf').exists()
    with pytest.raises(FileUploadError):
        store.delete(ref)


def test_local_store_stays_inside_its_root(tmp_path):
    store = LocalEvidenceStore(str(tmp_path / 'root'))
    with pytest.raises(FileUploadError):
        store.upload(b'data', '../escape.pdf')


class RecordingS3Client:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def _call(self, name, **kwargs):
        if self.error:
            raise self.error
        self.calls.append((name, kwargs))

    def put_object(self, **kwargs):
        self._call('put_object', **kwargs)

    def delete_object(self, **kwargs):
        self._call('delete_object', **kwargs)

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        self._call('generate_presigned_url', Params=Params, ExpiresIn=ExpiresIn)
        return f"https://example.invalid/{Params['Key']}"


def test_s3_store_uses_bucket_and_content_type():
    client = RecordingS3Client()
    store = S3EvidenceStore('clearance-bucket', 'ap-southeast-1', client=client)

    ref = store.upload(b'data', 'evidence/7/a.pdf')
    store.delete(ref)

    assert ref == 'evidence/7/a.pdf'
    assert client.calls == [
        ('put_object', {'Bucket': 'clearance-bucket', 'Key': ref, 'Body': b'data',
                        'ContentType': 'application/pdf'}),
        ('delete_object', {'Bucket': 'clearance-bucket', 'Key': ref}),
    ]
    assert store.url(ref).endswith(ref)


def test_s3_errors_become_upload_errors():
    error = ClientError({'Error': {'Code': 'NoSuchBucket', 'Message': 'missing'}}, 'PutObject')
    store = S3EvidenceStore('clearance-bucket', 'ap-southeast-1', client=RecordingS3Client(error))

    with pytest.raises(FileUploadError):
        store.upload(b'data', 'evidence/7/a.pdf')
    with pytest.raises(FileUploadError):
        store.delete('evidence/7/a.pdf')


def test_unknown_store_backend(app):
    app.config['EVIDENCE_STORE'] = 'ftp'
    with pytest.raises(ValueError):
        init_evidence_store(app)


def test_local_backend_is_configured(app):
    init_evidence_store(app)
    assert isinstance(app.extensions['iclear_evidence_store'], LocalEvidenceStore)
