from __future__ import annotations

import logging
from pathlib import Path

import pytest
from Crypto.PublicKey import ECC
from lxml import etree

from zatca_relay.config import Settings
from zatca_relay.document_builder import CBC_NS, build_invoice_document
from zatca_relay.normalization import normalize_invoice
from zatca_relay.signing import DS_NS, EXT_NS, EcdsaSigner, NullSigner, build_signer


def _xml() -> str:
    record = normalize_invoice(
        {
            "no": 5,
            "date": "2026-02-27",
            "customer": "Buyer",
            "vatNo": "310122393500003",
            "items": [{"name": "A", "quantity": 2, "price": 40}],
            "company": {"ownerName1": "Seller", "vatNo": "300000000000003"},
        }
    )
    return build_invoice_document(record, "hash").xml


@pytest.fixture
def key_file(tmp_path: Path) -> Path:
    path = tmp_path / "private.pem"
    path.write_text(ECC.generate(curve="P-256").export_key(format="PEM"), encoding="utf-8")
    return path


def test_null_signer_returns_document_unchanged(caplog: pytest.LogCaptureFixture) -> None:
    xml = _xml()
    with caplog.at_level(logging.WARNING):
        assert NullSigner().sign(xml) == xml
    assert "signing is disabled" in caplog.text


def test_ecdsa_signature_verifies(key_file: Path) -> None:
    signer = EcdsaSigner.from_files(key_file)
    signed = signer.sign(_xml())

    root = etree.fromstring(signed.encode("utf-8"))
    assert root[0].tag == f"{{{EXT_NS}}}UBLExtensions"
    assert root.find(f".//{{{DS_NS}}}DigestValue").text
    assert root.find(f".//{{{DS_NS}}}X509Certificate") is None
    assert signer.verify(signed)


def test_tampered_document_fails_verification(key_file: Path) -> None:
    signer = EcdsaSigner.from_files(key_file)
    root = etree.fromstring(signer.sign(_xml()).encode("utf-8"))
    root.find(f"{{{CBC_NS}}}ID").text = "999"
    tampered = etree.tostring(root, encoding="unicode")
    assert not signer.verify(tampered)


def test_resigning_replaces_previous_signature(key_file: Path) -> None:
    signer = EcdsaSigner.from_files(key_file)
    twice = signer.sign(signer.sign(_xml()))
    root = etree.fromstring(twice.encode("utf-8"))
    assert len(root.findall(f"{{{EXT_NS}}}UBLExtensions")) == 1
    assert signer.verify(twice)


def test_other_key_does_not_verify(key_file: Path) -> None:
    signed = EcdsaSigner.from_files(key_file).sign(_xml())
    other = EcdsaSigner(ECC.generate(curve="P-256"))
    assert not other.verify(signed)


def test_certificate_is_embedded(key_file: Path, tmp_path: Path) -> None:
    cert = tmp_path / "cert.pem"
    cert.write_text("-----BEGIN CERTIFICATE-----\nQUJD\nREVG\n-----END CERTIFICATE-----\n", encoding="utf-8")
    signed = EcdsaSigner.from_files(key_file, cert).sign(_xml())
    root = etree.fromstring(signed.encode("utf-8"))
    assert root.find(f".//{{{DS_NS}}}X509Certificate").text == "QUJDREVG"


def test_public_key_is_rejected() -> None:
    with pytest.raises(ValueError, match="private key"):
        EcdsaSigner(ECC.generate(curve="P-256").public_key())


def test_build_signer_follows_settings(key_file: Path) -> None:
    assert isinstance(build_signer(Settings()), NullSigner)
    assert isinstance(build_signer(Settings(private_key_file=str(key_file))), EcdsaSigner)
