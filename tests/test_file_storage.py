"""Tests for passport/ticket upload storage."""

import io

import pytest
from werkzeug.datastructures import FileStorage

from exceptions import UploadRejectedError
from file_storage import LocalFileStorage


def _upload(data, filename, content_type):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path, base_url='/uploads/', max_bytes=1024)


def test_upload_pdf(storage, tmp_path):
    doc = storage.upload('draft-1', _upload(b'%PDF-1.4 test', 'My Passport.pdf', 'application/pdf'), 'passport')
    assert doc.kind == 'passport'
    assert doc.file_name == 'My_Passport.pdf'
    assert doc.mime_type == 'application/pdf'
    assert doc.size == 13
    assert doc.url == f'/uploads/draft-1/{doc.id}.pdf'
    assert (tmp_path / 'draft-1' / f'{doc.id}.pdf').read_bytes() == b'%PDF-1.4 test'


@pytest.mark.parametrize("filename,content_type", [
    ('ticket.jpg', 'image/jpeg'),
    ('ticket.JPEG', 'image/jpeg'),
    ('ticket.png', 'image/png'),
])
def test_accepted_image_types(storage, filename, content_type):
    doc = storage.upload('draft-1', _upload(b'\x89data', filename, content_type), 'ticket')
    assert doc.kind == 'ticket'


@pytest.mark.parametrize("filename,content_type", [
    ('passport.docx', 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'),
    ('passport.gif', 'image/gif'),
    ('passport.pdf', 'text/html'),
    ('passport', 'application/pdf'),
])
def test_rejects_other_types(storage, filename, content_type):
    with pytest.raises(UploadRejectedError):
        storage.upload('draft-1', _upload(b'data', filename, content_type), 'passport')


def test_rejects_oversize_before_writing(storage, tmp_path):
    with pytest.raises(UploadRejectedError) as exc:
        storage.upload('draft-1', _upload(b'x' * 1025, 'big.pdf', 'application/pdf'), 'passport')
    assert exc.value.status_code == 400
    assert not (tmp_path / 'draft-1').exists()


def test_rejects_empty_file(storage):
    with pytest.raises(UploadRejectedError):
        storage.upload('draft-1', _upload(b'', 'empty.pdf', 'application/pdf'), 'passport')


def test_rejects_unknown_kind(storage):
    with pytest.raises(UploadRejectedError):
        storage.upload('draft-1', _upload(b'data', 'visa.pdf', 'application/pdf'), 'visa')


def test_owner_id_cannot_escape_upload_dir(storage, tmp_path):
    doc = storage.upload('../../etc', _upload(b'data', 'p.pdf', 'application/pdf'), 'passport')
    assert (tmp_path / 'etc' / f'{doc.id}.pdf').exists()


def test_delete(storage, tmp_path):
    doc = storage.upload('draft-1', _upload(b'data', 'p.png', 'image/png'), 'passport')
    assert storage.delete(doc.id)
    assert not (tmp_path / 'draft-1' / f'{doc.id}.png').exists()
    assert not storage.delete(doc.id)
