"""
Export of issued artifacts: PEM file layout and the PKCS#12 client bundle.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from ..models.errors import InvalidExportOptions
from ..models.pki import IssuanceResult, KeyPair, certificate_to_pem

PRIVATE_FILE_MODE = 0o600


class ExportBundler:
    """Packages a leaf, its key and its CA into a password-protected PKCS#12 bundle."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def bundle(self, leaf: x509.Certificate, key_pair: KeyPair, ca_certificate: x509.Certificate,
               friendly_name: str, password: Optional[str]) -> bytes:
        """
        Serialize a PKCS#12 bundle.

        Raises:
            InvalidExportOptions: If the password or friendly name is missing
        """
        if not password:
            raise InvalidExportOptions("an export password is required for the PKCS#12 bundle")
        if not friendly_name:
            raise InvalidExportOptions("a friendly name is required for the PKCS#12 bundle")

        data = pkcs12.serialize_key_and_certificates(
            name=friendly_name.encode(),
            key=key_pair.private_key,
            cert=leaf,
            cas=[ca_certificate],
            encryption_algorithm=serialization.BestAvailableEncryption(password.encode())
        )
        self.logger.info(f"Created PKCS#12 bundle for {friendly_name}")
        return data


@dataclass
class Artifact:
    """One file to be emitted, relative to the output directory."""
    relative_path: str
    content: bytes
    private: bool = False


class ArtifactWriter:
    """Lays out issued artifacts on disk the way the mTLS server and clients expect them."""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)
        self.logger = logging.getLogger(__name__)

    def plan(self, result: IssuanceResult, client_bundle: Optional[bytes] = None) -> List[Artifact]:
        """Encode every artifact in memory without touching the filesystem."""
        server_ca_pem = certificate_to_pem(result.server_ca)
        client_ca_pem = certificate_to_pem(result.client_ca)
        server_key_pem = result.server_key.private_key_pem()
        server_chain_pem = result.server_chain.to_pem()

        artifacts = [
            Artifact("pki/ca_server/ca.key", result.server_ca_key.private_key_pem(), private=True),
            Artifact("pki/ca_server/ca.crt", server_ca_pem),
            Artifact("pki/ca_client/ca.key", result.client_ca_key.private_key_pem(), private=True),
            Artifact("pki/ca_client/ca.crt", client_ca_pem),
            Artifact("pki/server/server.key", server_key_pem, private=True),
            Artifact("pki/server/server.crt", certificate_to_pem(result.server_leaf)),
            Artifact("pki/server/server-fullchain.crt", server_chain_pem),
            Artifact("pki/client/client.key", result.client_key.private_key_pem(), private=True),
            Artifact("pki/client/client.crt", certificate_to_pem(result.client_leaf)),
            Artifact("pki/client/client-fullchain.crt", result.client_chain.to_pem()),
            Artifact("key.pem", server_key_pem, private=True),
            Artifact("cert.pem", server_chain_pem),
            Artifact("client-ca.pem", client_ca_pem),
            Artifact("cert/ca.crt", client_ca_pem),
        ]
        if client_bundle is not None:
            artifacts.append(Artifact("pki/client/client.p12", client_bundle, private=True))
        return artifacts

    def write(self, result: IssuanceResult, client_bundle: Optional[bytes] = None) -> Dict[str, Path]:
        """
        Write all artifacts under the output directory.

        Returns:
            Mapping of relative path to the absolute path written
        """
        artifacts = self.plan(result, client_bundle)
        written = {}

        for artifact in artifacts:
            path = self.output_dir / artifact.relative_path
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(artifact.content)
            if artifact.private:
                os.chmod(path, PRIVATE_FILE_MODE)
            written[artifact.relative_path] = path.resolve()
            self.logger.debug(f"Wrote {path}")

        self.logger.info(f"Wrote {len(written)} files under {self.output_dir.resolve()}")
        return written

    def summary(self, written: Dict[str, Path]) -> str:
        """Human-readable list of files and verification commands."""
        def show(relative):
            return str(written.get(relative, self.output_dir / relative))

        lines = [
            "Done.",
            "Server files:",
            f"  key.pem                 -> {show('key.pem')}",
            f"  cert.pem (fullchain)    -> {show('cert.pem')}",
            "",
            "Client trust (for server-side mTLS verification):",
            f"  client-ca.pem           -> {show('client-ca.pem')}   (same as ./cert/ca.crt)",
            f"  ./cert/ca.crt           -> {show('cert/ca.crt')}",
            "",
            "Client artifacts (give these to the client):",
            f"  client-key.pem          -> {show('pki/client/client.key')}",
            f"  client-cert.pem         -> {show('pki/client/client.crt')}",
            f"  client-fullchain.pem    -> {show('pki/client/client-fullchain.crt')}",
        ]
        if "pki/client/client.p12" in written:
            lines.append(f"  client.p12              -> {show('pki/client/client.p12')}")
        else:
            lines.append("  client.p12              -> skipped (no export password configured)")

        lines.extend([
            "",
            "Verify examples:",
            "  # Show server certificate:",
            f"  openssl x509 -in {show('pki/server/server.crt')} -noout -text | less",
            "  # Verify client cert chains to the Client CA:",
            f"  openssl verify -CAfile {show('pki/ca_client/ca.crt')} {show('pki/client/client.crt')}",
            "  # Test the running server with the client certificate:",
            f"  openssl s_client -connect localhost:8443 -servername localhost "
            f"-cert {show('pki/client/client-fullchain.crt')} -key {show('pki/client/client.key')} "
            f"-CAfile {show('pki/ca_server/ca.crt')} -brief",
        ])
        return "\n".join(lines)
