"""
Tests for CertificateRequestBuilder.
"""
import unittest

from certforge.models.errors import InvalidDistinguishedName, InvalidSubjectAltName
from certforge.models.pki import (
    ClientLeaf,
    DistinguishedName,
    ExtendedKeyUsagePurpose,
    KeyUsageFlag,
    ServerLeaf,
    SubjectAltName,
)
from certforge.services.key_service import KeyGenerator
from certforge.services.request_builder import CertificateRequestBuilder


class TestCertificateRequestBuilder(unittest.TestCase):
    """Test cases for building server and client requests."""

    @classmethod
    def setUpClass(cls):
        cls.key_pair = KeyGenerator().generate("EC", 256)

    def setUp(self):
        self.builder = CertificateRequestBuilder()
        self.server_subject = DistinguishedName(
            country="US", organization="Example Org", organizational_unit="Infra", common_name="localhost"
        )
        self.client_subject = DistinguishedName(
            country="US", organization="Example Org", organizational_unit="TrustedDevices",
            common_name="client1"
        )

    def test_server_request(self):
        role = ServerLeaf(
            identity="localhost",
            subject_alt_names=(SubjectAltName.dns("localhost"), SubjectAltName.ip("127.0.0.1"))
        )

        request = self.builder.build(self.key_pair.public_key, self.server_subject, role)

        self.assertIs(request.public_key, self.key_pair.public_key)
        self.assertEqual(request.subject, self.server_subject)
        self.assertFalse(request.extensions.is_ca)
        self.assertEqual(request.extensions.key_usage,
                         frozenset({KeyUsageFlag.DIGITAL_SIGNATURE, KeyUsageFlag.KEY_ENCIPHERMENT}))
        self.assertEqual(request.extensions.extended_key_usage,
                         frozenset({ExtendedKeyUsagePurpose.SERVER_AUTH}))
        self.assertEqual([str(s) for s in request.extensions.subject_alt_names],
                         ["DNS:localhost", "IP:127.0.0.1"])

    def test_server_sans_accept_string_notation_and_drop_duplicates(self):
        role = ServerLeaf(
            identity="api.example.com",
            subject_alt_names=("DNS:api.example.com", "DNS:API.example.com", "IP:10.0.0.5")
        )

        request = self.builder.build(self.key_pair.public_key, self.server_subject, role)

        self.assertEqual([str(s) for s in request.extensions.subject_alt_names],
                         ["DNS:api.example.com", "IP:10.0.0.5"])

    def test_server_identity_as_ip(self):
        role = ServerLeaf(identity="192.168.1.10", subject_alt_names=(SubjectAltName.ip("192.168.1.10"),))
        request = self.builder.build(self.key_pair.public_key, self.server_subject, role)
        self.assertEqual(len(request.extensions.subject_alt_names), 1)

    def test_server_without_sans_is_rejected(self):
        with self.assertRaises(InvalidSubjectAltName):
            self.builder.build(self.key_pair.public_key, self.server_subject, ServerLeaf(identity="localhost"))

    def test_server_sans_must_include_identity(self):
        role = ServerLeaf(identity="api.example.com", subject_alt_names=(SubjectAltName.dns("localhost"),))

        with self.assertRaises(InvalidSubjectAltName) as cm:
            self.builder.build(self.key_pair.public_key, self.server_subject, role)
        self.assertIn("api.example.com", str(cm.exception))

    def test_malformed_san_is_rejected(self):
        role = ServerLeaf(identity="localhost", subject_alt_names=("DNS:localhost", "DNS:not_valid!"))

        with self.assertRaises(InvalidSubjectAltName):
            self.builder.build(self.key_pair.public_key, self.server_subject, role)

    def test_client_request(self):
        request = self.builder.build(
            self.key_pair.public_key, self.client_subject, ClientLeaf(organizational_unit="TrustedDevices")
        )

        self.assertFalse(request.extensions.is_ca)
        self.assertEqual(request.extensions.extended_key_usage,
                         frozenset({ExtendedKeyUsagePurpose.CLIENT_AUTH}))
        self.assertEqual(request.extensions.subject_alt_names, ())
        self.assertEqual(request.subject.organizational_unit, "TrustedDevices")

    def test_client_ou_must_match_exactly(self):
        with self.assertRaises(InvalidDistinguishedName):
            self.builder.build(
                self.key_pair.public_key, self.client_subject, ClientLeaf(organizational_unit="trusteddevices")
            )

    def test_client_subject_without_ou_is_rejected(self):
        subject = DistinguishedName(common_name="client1")

        with self.assertRaises(InvalidDistinguishedName):
            self.builder.build(self.key_pair.public_key, subject, ClientLeaf(organizational_unit="TrustedDevices"))

    def test_unknown_role_is_a_type_error(self):
        with self.assertRaises(TypeError):
            self.builder.build(self.key_pair.public_key, self.client_subject, object())


if __name__ == '__main__':
    unittest.main()
