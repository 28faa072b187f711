from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Protocol

from Crypto.Hash import SHA256
from Crypto.PublicKey import ECC
from Crypto.Signature import DSS
from lxml import etree

from zatca_relay.config import Settings
from zatca_relay.document_builder import CBC_NS

EXT_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
SIG_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonSignatureComponents-2"
SAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:SignatureAggregateComponents-2"
SBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:SignatureBasicComponents-2"
DS_NS = "http://www.w3.org/2000/09/xmldsig#"

C14N_ALGORITHM = "http://www.w3.org/2006/12/xml-c14n11"
SIGNATURE_ALGORITHM = "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256"
DIGEST_ALGORITHM = "http://www.w3.org/2001/04/xmlenc#sha256"

logger = logging.getLogger(__name__)


class InvoiceSigner(Protocol):
    def sign(self, xml: str) -> str:
        """Return ``xml`` with an enveloped signature applied."""


class NullSigner:
    """Pass-through signer for environments without a signing key."""

    def sign(self, xml: str) -> str:
        logger.warning("Invoice signing is disabled; submitting unsigned document")
        return xml


def _strip_extensions(root: etree._Element) -> None:
    for extensions in root.findall(f"{{{EXT_NS}}}UBLExtensions"):
        root.remove(extensions)


def _signed_digest(root: etree._Element) -> SHA256.SHA256Hash:
    unsigned = etree.fromstring(etree.tostring(root))
    _strip_extensions(unsigned)
    canonical = etree.tostring(unsigned, method="c14n")
    return SHA256.new(canonical)


def _pem_body(pem_text: str) -> str:
    lines = [line.strip() for line in pem_text.splitlines()]
    return "".join(line for line in lines if line and not line.startswith("-----"))


class EcdsaSigner:
    def __init__(self, private_key: ECC.EccKey, certificate_b64: str | None = None) -> None:
        if not private_key.has_private():
            raise ValueError("EcdsaSigner requires a private key")
        self._key = private_key
        self._certificate = certificate_b64

    @classmethod
    def from_files(cls, private_key_file: str | Path, certificate_file: str | Path | None = None) -> "EcdsaSigner":
        key = ECC.import_key(Path(private_key_file).read_text(encoding="utf-8"))
        certificate = None
        if certificate_file is not None:
            certificate = _pem_body(Path(certificate_file).read_text(encoding="utf-8"))
        return cls(key, certificate)

    def sign(self, xml: str) -> str:
        root = etree.fromstring(xml.encode("utf-8"))
        _strip_extensions(root)
        digest = _signed_digest(root)
        digest_value = base64.b64encode(digest.digest()).decode("ascii")
        signature = DSS.new(self._key, "fips-186-3", encoding="der").sign(digest)
        signature_value = base64.b64encode(signature).decode("ascii")
        root.insert(0, self._extensions(digest_value, signature_value))
        return etree.tostring(root, xml_declaration=True, encoding="UTF-8").decode("utf-8")

    def verify(self, signed_xml: str) -> bool:
        root = etree.fromstring(signed_xml.encode("utf-8"))
        value = root.find(f".//{{{DS_NS}}}SignatureValue")
        if value is None or not value.text:
            return False
        digest = _signed_digest(root)
        try:
            DSS.new(self._key.public_key(), "fips-186-3", encoding="der").verify(
                digest, base64.b64decode(value.text)
            )
        except ValueError:
            return False
        return True

    def _extensions(self, digest_value: str, signature_value: str) -> etree._Element:
        extensions = etree.Element(f"{{{EXT_NS}}}UBLExtensions")
        extension = etree.SubElement(extensions, f"{{{EXT_NS}}}UBLExtension")
        etree.SubElement(extension, f"{{{EXT_NS}}}ExtensionURI").text = (
            "urn:oasis:names:specification:ubl:dsig:enveloped:xades"
        )
        content = etree.SubElement(extension, f"{{{EXT_NS}}}ExtensionContent")
        signatures = etree.SubElement(content, f"{{{SIG_NS}}}UBLDocumentSignatures")
        info = etree.SubElement(signatures, f"{{{SAC_NS}}}SignatureInformation")
        etree.SubElement(info, f"{{{CBC_NS}}}ID").text = "urn:oasis:names:specification:ubl:signature:1"
        etree.SubElement(info, f"{{{SBC_NS}}}ReferencedSignatureID").text = (
            "urn:oasis:names:specification:ubl:signature:Invoice"
        )

        signature = etree.SubElement(info, f"{{{DS_NS}}}Signature", Id="signature")
        signed_info = etree.SubElement(signature, f"{{{DS_NS}}}SignedInfo")
        etree.SubElement(signed_info, f"{{{DS_NS}}}CanonicalizationMethod", Algorithm=C14N_ALGORITHM)
        etree.SubElement(signed_info, f"{{{DS_NS}}}SignatureMethod", Algorithm=SIGNATURE_ALGORITHM)
        reference = etree.SubElement(signed_info, f"{{{DS_NS}}}Reference", Id="invoiceSignedData", URI="")
        transforms = etree.SubElement(reference, f"{{{DS_NS}}}Transforms")
        transform = etree.SubElement(
            transforms,
            f"{{{DS_NS}}}Transform",
            Algorithm="http://www.w3.org/TR/1999/REC-xpath-19991116",
        )
        etree.SubElement(transform, f"{{{DS_NS}}}XPath").text = "not(//ancestor-or-self::ext:UBLExtensions)"
        etree.SubElement(transforms, f"{{{DS_NS}}}Transform", Algorithm=C14N_ALGORITHM)
        etree.SubElement(reference, f"{{{DS_NS}}}DigestMethod", Algorithm=DIGEST_ALGORITHM)
        etree.SubElement(reference, f"{{{DS_NS}}}DigestValue").text = digest_value
        etree.SubElement(signature, f"{{{DS_NS}}}SignatureValue").text = signature_value

        if self._certificate:
            key_info = etree.SubElement(signature, f"{{{DS_NS}}}KeyInfo")
            x509 = etree.SubElement(key_info, f"{{{DS_NS}}}X509Data")
            etree.SubElement(x509, f"{{{DS_NS}}}X509Certificate").text = self._certificate
        return extensions


def build_signer(settings: Settings) -> InvoiceSigner:
    if settings.private_key_file:
        return EcdsaSigner.from_files(settings.private_key_file, settings.certificate_file)
    return NullSigner()
