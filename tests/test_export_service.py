"""
Tests for ExportBundler and ArtifactWriter.
"""
import os
import shutil
import stat
import tempfile
import unittest

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from certforge.models.config import IssuanceConfig
from certforge.models.errors import InvalidExportOptions
from certforge.services.export_service import ArtifactWriter, ExportBundler
from certforge.services.issuance_service import IssuanceEngine


class ExportTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.result = IssuanceEngine(IssuanceConfig(ca_key_bits=2048)).run()

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)


class TestExportBundler(ExportTestCase):
    """Test cases for the PKCS#12 client bundle."""

    def test_bundle_round_trip(self):
        data = ExportBundler().bundle(
            self.result.client_leaf, self.result.client_key, self.result.client_ca, "client1", "s3cret"
        )

        bundle = pkcs12.load_pkcs12(data, b"s3cret")

        self.assertEqual(bundle.cert.certificate, self.result.client_leaf)
        self.assertEqual(bundle.cert.friendly_name, b"client1")
        self.assertEqual([c.certificate for c in bundle.additional_certs], [self.result.client_ca])
        self.assertEqual(
            bundle.key.private_numbers(), self.result.client_key.private_key.private_numbers()
        )

    def test_wrong_password_fails(self):
        data = ExportBundler().bundle(
            self.result.client_leaf, self.result.client_key, self.result.client_ca, "client1", "s3cret"
        )

        with self.assertRaises(ValueError):
            pkcs12.load_pkcs12(data, b"changeit")

    def test_password_is_required(self):
        for password in (None, ""):
            with self.subTest(password=password):
                with self.assertRaises(InvalidExportOptions):
                    ExportBundler().bundle(
                        self.result.client_leaf, self.result.client_key, self.result.client_ca,
                        "client1", password
                    )

    def test_friendly_name_is_required(self):
        with self.assertRaises(InvalidExportOptions):
            ExportBundler().bundle(
                self.result.client_leaf, self.result.client_key, self.result.client_ca, "", "s3cret"
            )


class TestArtifactWriter(ExportTestCase):
    """Test cases for the on-disk layout."""

    def test_plan_does_not_touch_disk(self):
        artifacts = ArtifactWriter(self.temp_dir).plan(self.result)

        self.assertEqual(os.listdir(self.temp_dir), [])
        paths = [a.relative_path for a in artifacts]
        self.assertIn("key.pem", paths)
        self.assertNotIn("pki/client/client.p12", paths)

    def test_write_layout(self):
        written = ArtifactWriter(self.temp_dir).write(self.result, client_bundle=b"p12-bytes")

        expected = {
            "pki/ca_server/ca.key", "pki/ca_server/ca.crt",
            "pki/ca_client/ca.key", "pki/ca_client/ca.crt",
            "pki/server/server.key", "pki/server/server.crt", "pki/server/server-fullchain.crt",
            "pki/client/client.key", "pki/client/client.crt", "pki/client/client-fullchain.crt",
            "pki/client/client.p12",
            "key.pem", "cert.pem", "client-ca.pem", "cert/ca.crt",
        }
        self.assertEqual(set(written), expected)
        for path in written.values():
            self.assertTrue(path.is_file())

    def test_server_files(self):
        written = ArtifactWriter(self.temp_dir).write(self.result)

        chain = x509.load_pem_x509_certificates(written["cert.pem"].read_bytes())
        self.assertEqual(chain, [self.result.server_leaf, self.result.server_ca])

        key = serialization.load_pem_private_key(written["key.pem"].read_bytes(), password=None)
        self.assertEqual(key.public_key().public_numbers(), self.result.server_leaf.public_key().public_numbers())

    def test_client_trust_files_are_the_client_ca(self):
        written = ArtifactWriter(self.temp_dir).write(self.result)

        for relative in ("client-ca.pem", "cert/ca.crt", "pki/ca_client/ca.crt"):
            with self.subTest(relative=relative):
                certificate = x509.load_pem_x509_certificate(written[relative].read_bytes())
                self.assertEqual(certificate, self.result.client_ca)

        client_chain = x509.load_pem_x509_certificates(written["pki/client/client-fullchain.crt"].read_bytes())
        self.assertEqual(client_chain, [self.result.client_leaf, self.result.client_ca])

    @unittest.skipIf(os.name == "nt", "POSIX permissions")
    def test_private_files_are_owner_only(self):
        written = ArtifactWriter(self.temp_dir).write(self.result, client_bundle=b"p12")

        for relative in ("key.pem", "pki/server/server.key", "pki/client/client.key",
                         "pki/ca_server/ca.key", "pki/client/client.p12"):
            with self.subTest(relative=relative):
                mode = stat.S_IMODE(written[relative].stat().st_mode)
                self.assertEqual(mode, 0o600)

    def test_summary_mentions_files_and_commands(self):
        writer = ArtifactWriter(self.temp_dir)
        written = writer.write(self.result)

        summary = writer.summary(written)

        self.assertIn(str(written["cert.pem"]), summary)
        self.assertIn("openssl verify -CAfile", summary)
        self.assertIn("client.p12              -> skipped", summary)


if __name__ == '__main__':
    unittest.main()
