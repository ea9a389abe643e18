import datetime
import ipaddress
import os
import tempfile
import typing

import OpenSSL
from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from twisted.internet.ssl import CertificateOptions, TLSVersion

COMMON_NAME = x509.NameOID.COMMON_NAME


def build_alt_names(names: typing.Iterable[str]) -> typing.List[x509.GeneralName]:
    """
    Turn hostnames and IP address strings into subjectAltName entries.
    """
    alt_names: typing.List[x509.GeneralName] = []
    for name in dict.fromkeys(names):
        try:
            alt_names.append(x509.IPAddress(ipaddress.ip_address(name)))
        except ValueError:
            alt_names.append(x509.DNSName(name))
    return alt_names


def generate_ad_hoc_certificate(
    hostname: str, alt_names: typing.Sequence[str] = ("localhost", "127.0.0.1")
) -> typing.Tuple[str, str]:
    """
    Utility function to generate an ad-hoc self-signed SSL certificate.

    The certificate is valid for the hostname plus the loopback names, so
    that local clients can connect with either "localhost" or "127.0.0.1".
    Files are cached in the temp directory and reused on the next start.
    """
    certfile = os.path.join(tempfile.gettempdir(), f"chaykin-{hostname}.crt")
    keyfile = os.path.join(tempfile.gettempdir(), f"chaykin-{hostname}.key")

    if not os.path.exists(certfile) or not os.path.exists(keyfile):
        backend = default_backend()

        private_key = rsa.generate_private_key(65537, 2048, backend)
        with open(keyfile, "wb") as fp:
            # noinspection PyTypeChecker
            key_data = private_key.private_bytes(
                serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            )
            fp.write(key_data)

        subject_name = x509.Name([x509.NameAttribute(COMMON_NAME, hostname)])
        not_valid_before = datetime.datetime.now(datetime.timezone.utc)
        not_valid_after = not_valid_before + datetime.timedelta(days=365)
        certificate = x509.CertificateBuilder(
            subject_name=subject_name,
            issuer_name=subject_name,
            public_key=private_key.public_key(),
            serial_number=x509.random_serial_number(),
            not_valid_before=not_valid_before,
            not_valid_after=not_valid_after,
        )
        certificate = certificate.add_extension(
            x509.SubjectAlternativeName(build_alt_names([hostname, *alt_names])),
            critical=False,
        )
        certificate = certificate.sign(private_key, hashes.SHA256(), backend)
        with open(certfile, "wb") as fp:
            # noinspection PyTypeChecker
            cert_data = certificate.public_bytes(serialization.Encoding.PEM)
            fp.write(cert_data)

    return certfile, keyfile


class GeminiCertificateOptions(CertificateOptions):
    """
    CertificateOptions that loads the server certificate and key from files.

    twisted's built-in class expects already-parsed pyOpenSSL objects, this
    subclass reads PEM files from disk instead. Client certificates are never
    requested, the graph is public.
    """

    def __init__(self, certfile: str, keyfile: typing.Optional[str] = None) -> None:
        self.certfile = certfile
        self.keyfile = keyfile

        super().__init__(
            raiseMinimumTo=TLSVersion.TLSv1_2,
            requireCertificate=False,
            fixBrokenPeers=True,
        )

    def _makeContext(self) -> OpenSSL.SSL.Context:
        ctx = self._contextFactory(self.method)
        ctx.set_options(self._options)
        ctx.set_mode(self._mode)

        ctx.use_certificate_file(self.certfile)
        ctx.use_privatekey_file(self.keyfile or self.certfile)
        # Sanity check
        ctx.check_privatekey()

        ctx.set_cipher_list(self._cipherString.encode("ascii"))
        self._ecChooser.configureECDHCurve(ctx)
        return ctx
