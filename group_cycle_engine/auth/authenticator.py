"""
Authentication module — Certificate-based app-only and delegated device-code auth.
Uses MSAL for token acquisition against the Microsoft identity platform.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat, pkcs12
import msal

from ..config import (
    AuthConfig,
    CERT_PASSWORD_ENV,
    LOGIN_AUTHORITY,
    REQUIRED_PERMISSIONS,
)

logger = logging.getLogger("group_cycle_engine.auth")

# App-only tokens always ask for the app's configured permissions
APP_SCOPES = ["https://graph.microsoft.com/.default"]


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


@dataclass
class LoadedCertificate:
    """Key material extracted from a PFX, in the shape MSAL expects."""
    private_key_pem: str
    thumbprint: str


def load_certificate(cert_path: str, password: str) -> LoadedCertificate:
    """
    Load a base64-encoded PFX file and return its PEM private key and SHA-1
    thumbprint.
    """
    try:
        with open(cert_path, "r", encoding="utf-8") as f:
            cert_bytes = base64.b64decode(f.read().strip())
    except FileNotFoundError:
        raise AuthenticationError(f"Certificate file not found: {cert_path}")
    except ValueError as e:
        raise AuthenticationError(f"Certificate file is not valid base64: {e}")

    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            cert_bytes, password.encode("utf-8") if password else None
        )
    except ValueError as e:
        raise AuthenticationError(f"Failed to load certificate: {e}")

    if private_key is None or certificate is None:
        raise AuthenticationError("PFX does not contain both a private key and a certificate.")

    return LoadedCertificate(
        private_key_pem=private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("utf-8"),
        thumbprint=certificate.fingerprint(SHA1()).hex(),
    )


class Authenticator:
    """
    Handles MSAL-based authentication for Microsoft Graph.
    Supports:
      - Certificate-based app-only authentication (client credentials)
      - Delegated authentication via device code flow
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None

    async def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _acquire_certificate_token(self) -> str:
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")

        logger.info("Authenticating with certificate-based app credentials...")

        password = (
            cert_config.certificate_password
            or os.environ.get(CERT_PASSWORD_ENV, "")
            or getpass.getpass("Enter the certificate password: ")
        )
        cert = load_certificate(cert_config.certificate_path, password)
        logger.info(f"Certificate loaded. Thumbprint: {cert.thumbprint}")

        app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=f"{LOGIN_AUTHORITY}/{cert_config.tenant_id}",
            client_credential={
                "thumbprint": cert.thumbprint,
                "private_key": cert.private_key_pem,
            },
        )
        return self._take_token(app.acquire_token_for_client(scopes=APP_SCOPES), "Certificate")

    def _acquire_delegated_token(self) -> str:
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")

        logger.info("Initiating device code authentication flow...")

        app = msal.PublicClientApplication(
            client_id=deleg_config.client_id,
            authority=f"{LOGIN_AUTHORITY}/{deleg_config.tenant_id}",
        )
        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  {flow.get('message') or 'Open ' + flow['verification_uri']}")
        print(f"{'='*60}\n")

        return self._take_token(app.acquire_token_by_device_flow(flow), "Delegated")

    def _take_token(self, result: dict, label: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            logger.info(f"{label} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        """Return the map of required Graph API permissions."""
        return REQUIRED_PERMISSIONS
