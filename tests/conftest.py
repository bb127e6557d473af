"""Shared fixtures: handler set, in-process app client, live servers, TLS certs."""
import asyncio
import datetime
import ipaddress
from dataclasses import dataclass

import pytest
import pytest_asyncio
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from fastapi.testclient import TestClient

from postrpc import ClientConfig, RPCClient, RPCServer, ServerConfig, TLSOptions


def register_test_handlers(server: RPCServer) -> RPCServer:
    """Register the handlers shared by the pipeline and round-trip tests."""

    def echo(ctx):
        return ctx.result(ctx.data())

    async def async_echo(ctx):
        await asyncio.sleep(0)
        return ctx.result(ctx.data())

    def sync_boom(ctx):
        raise RuntimeError("boom")

    async def async_boom(ctx):
        await asyncio.sleep(0)
        raise RuntimeError("boom")

    def nothing(ctx):
        return None

    return (
        server.handle("echo", echo)
        .handle("async_echo", async_echo)
        .handle("sync_boom", sync_boom)
        .handle("async_boom", async_boom)
        .handle("nothing", nothing)
    )


@pytest.fixture
def server():
    """Server with the shared handlers registered, not listening."""
    return register_test_handlers(RPCServer(ServerConfig(host="127.0.0.1", port=0)))


@pytest.fixture
def app_client(server):
    """In-process HTTP client for the server's app."""
    with TestClient(server.app) as c:
        yield c


@dataclass
class TLSFiles:
    ca_certs: str
    certfile: str
    keyfile: str


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def _key_usage(**enabled) -> x509.KeyUsage:
    flags = dict(
        digital_signature=False,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    flags.update(enabled)
    return x509.KeyUsage(**flags)


@pytest.fixture(scope="session")
def tls_files(tmp_path_factory) -> TLSFiles:
    """Throwaway CA plus a server certificate for 127.0.0.1/localhost."""
    directory = tmp_path_factory.mktemp("tls")
    now = datetime.datetime.now(datetime.timezone.utc)
    valid_from = now - datetime.timedelta(days=1)
    valid_to = now + datetime.timedelta(days=1)

    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = _name("post-rpc test CA")
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True, key_cert_sign=True, crl_sign=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    server_key = ec.generate_private_key(ec.SECP256R1())
    server_cert = (
        x509.CertificateBuilder()
        .subject_name(_name("localhost"))
        .issuer_name(ca_name)
        .public_key(server_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(digital_signature=True), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(server_key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    files = TLSFiles(
        ca_certs=str(directory / "ca.pem"),
        certfile=str(directory / "server.pem"),
        keyfile=str(directory / "server.key"),
    )
    with open(files.ca_certs, "wb") as f:
        f.write(ca_cert.public_bytes(serialization.Encoding.PEM))
    with open(files.certfile, "wb") as f:
        f.write(server_cert.public_bytes(serialization.Encoding.PEM))
    with open(files.keyfile, "wb") as f:
        f.write(
            server_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            )
        )
    return files


@pytest_asyncio.fixture
async def plain_listener(server):
    """Server listening on an ephemeral plain-HTTP port."""
    handle = await server.listen()
    yield handle
    await handle.close()


@pytest_asyncio.fixture
async def tls_listener(tls_files):
    """Server listening on an ephemeral HTTPS port."""
    tls_server = register_test_handlers(
        RPCServer(
            ServerConfig(
                host="127.0.0.1",
                port=0,
                tls=True,
                tls_options=TLSOptions(certfile=tls_files.certfile, keyfile=tls_files.keyfile),
            )
        )
    )
    handle = await tls_server.listen()
    yield handle
    await handle.close()


@pytest_asyncio.fixture
async def rpc_client(plain_listener):
    """Client pointed at the plain listener."""
    async with RPCClient(ClientConfig(host="127.0.0.1", port=plain_listener.port, timeout=10)) as c:
        yield c
