"""Tests for the local document storage backend."""

import pytest

from rentpilot.services.document_storage import LocalDocumentStorage

pytestmark = pytest.mark.unit


def test_save_then_delete(tmp_path):
    storage = LocalDocumentStorage(str(tmp_path / "uploads"))

    file_url = storage.save("proof_101_1.pdf", b"%PDF")

    assert file_url == "/uploads/proof_101_1.pdf"
    assert (tmp_path / "uploads" / "proof_101_1.pdf").read_bytes() == b"%PDF"

    storage.delete(file_url)
    storage.delete(file_url)

    assert not (tmp_path / "uploads" / "proof_101_1.pdf").exists()


def test_save_strips_directories(tmp_path):
    storage = LocalDocumentStorage(str(tmp_path))

    file_url = storage.save("../../etc/proof.pdf", b"x")

    assert file_url == "/uploads/proof.pdf"
    assert (tmp_path / "proof.pdf").exists()
