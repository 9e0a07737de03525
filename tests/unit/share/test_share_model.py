"""Tests for the share record model, projections and helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from ephemeral_share.app.sharing.model import (
    BlobRef,
    ContentKind,
    FileContent,
    FileMetadata,
    FileStreamRef,
    ShareProjection,
    ShareRecord,
    TextContent,
    generate_share_id,
    parse_timestamp,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _text_record(**overrides) -> ShareRecord:
    fields = dict(id='abcdefghijkl', content=TextContent('secret'), expires_at=T0)
    fields.update(overrides)
    return ShareRecord(**fields)


def _file_record(**overrides) -> ShareRecord:
    fields = dict(
        id='fileshare0001',
        content=FileContent(
            blob_ref=BlobRef(key='ab/abcdef', checksum='c0ffee'),
            metadata=FileMetadata('report.pdf', 'application/pdf', 1234),
        ),
        expires_at=T0,
    )
    fields.update(overrides)
    return ShareRecord(**fields)


class TestShareRecord:

    def test_content_kind_derived_from_variant(self):
        assert _text_record().content_kind is ContentKind.TEXT
        assert _file_record().content_kind is ContentKind.FILE
        assert _text_record().blob_ref is None
        assert _file_record().text_content is None

    def test_expired_at_exact_boundary(self):
        record = _text_record()
        assert not record.is_expired(T0 - timedelta(microseconds=1))
        assert record.is_expired(T0)

    def test_one_time_view_limit(self):
        record = _text_record(one_time_view=True)
        assert not record.limit_reached(0)
        assert record.limit_reached(1)

    def test_max_views_limit(self):
        record = _text_record(max_views=3)
        assert not record.limit_reached(2)
        assert record.limit_reached(3)

    def test_no_limit(self):
        assert not _text_record().limit_reached(1000)

    def test_limit_reached_defaults_to_current_views(self):
        assert _text_record(max_views=2, current_views=2).limit_reached()

    def test_digest_not_in_repr(self):
        record = _text_record(password_digest='scrypt$4$8$1$salt$key')
        assert 'scrypt' not in repr(record)
        assert record.password_protected

    def test_blob_key_not_in_repr(self):
        record = _file_record()
        assert 'ab/abcdef' not in repr(record)
        ref = FileStreamRef(
            share_id=record.id,
            metadata=record.file_content.metadata,
            current_views=1,
            blob_ref=record.blob_ref,
        )
        assert 'ab/abcdef' not in repr(ref)


class TestProjection:

    def test_text_projection(self):
        record = _text_record(created_at=T0 - timedelta(minutes=5), max_views=2)
        data = ShareProjection.from_record(record, current_views=1).to_dict()
        assert data['shareId'] == record.id
        assert data['contentType'] == 'text'
        assert data['textContent'] == 'secret'
        assert data['currentViews'] == 1
        assert data['maxViews'] == 2
        assert data['passwordProtected'] is False
        assert 'fileMetadata' not in data

    def test_file_projection_exposes_download_url_not_key(self):
        record = _file_record()
        data = ShareProjection.from_record(
            record, current_views=0, download_url='/api/download/fileshare0001',
        ).to_dict()
        assert data['contentType'] == 'file'
        assert data['fileMetadata'] == {
            'originalName': 'report.pdf',
            'mimeType': 'application/pdf',
            'size': 1234,
            'downloadUrl': '/api/download/fileshare0001',
        }
        assert 'ab/abcdef' not in str(data)
        assert 'textContent' not in data


class TestHelpers:

    def test_share_ids_are_unique_and_url_safe(self):
        ids = {generate_share_id() for _ in range(200)}
        assert len(ids) == 200
        for share_id in ids:
            assert len(share_id) >= 22
            assert all(c.isalnum() or c in '-_' for c in share_id)

    def test_parse_timestamp_variants(self):
        assert parse_timestamp('2026-01-01T12:00:00Z') == T0
        assert parse_timestamp('2026-01-01T13:00:00+01:00') == T0
        assert parse_timestamp('2026-01-01T12:00:00') == T0
        assert parse_timestamp(T0.replace(tzinfo=None)) == T0
